#!/usr/bin/env python3
"""
Leverage engine
Entry point for ``python -m leverage_engine.main``
"""
from .cli import main

if __name__ == "__main__":
    main()
