"""
Entry point for running the MultiMoon CLI as a module.

Usage: python -m multimoon [command] [options]
"""

from multimoon.cli.parser import main

if __name__ == "__main__":
    main()
