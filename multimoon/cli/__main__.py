"""
Entry point for running the MultiMoon CLI as a module.

Usage: python -m multimoon.cli [command] [options]
"""

from .parser import main

if __name__ == "__main__":
    main()
