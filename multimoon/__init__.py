"""
MultiMoon: version manager for the MoonBit toolchain.
"""

__version__ = "0.1.0"
