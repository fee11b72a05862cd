"""
Terminal colors for the benchmark and evaluation reports.
"""

from colorama import Fore, Style

THEME = {
    "info": Fore.WHITE + Style.DIM,
    "success": Fore.GREEN,
    "warning": Fore.YELLOW,
    "error": Fore.RED,
    "highlight": Fore.CYAN,
    "codec": Fore.MAGENTA,
    "metadata": Fore.WHITE + Style.DIM,
}


def paint(kind: str, text: str) -> str:
    """Wrap text in the color for `kind` and reset afterwards"""
    return f"{THEME[kind]}{text}{Style.RESET_ALL}"
