"""
update-self command implementation.

MultiMoon doesn't update itself; this only points to the releases page.
"""

from multimoon.cli.utils import safe_print

RELEASES_URL = "https://github.com/lone-outpost-oss/multimoon/releases"


def run(args) -> int:
    safe_print("The update-self command is not implemented yet, sorry for the inconvenience!")
    safe_print("")
    safe_print("Latest version of MultiMoon can be downloaded at:")
    safe_print("")
    safe_print(f"  {RELEASES_URL}")
    return 0
