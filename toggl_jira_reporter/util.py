import sys

def vprint(verbose: bool, *args, **kwargs):
    """Print arguments only when verbose is True."""
    if verbose:
        print(*args, **kwargs)

def warn(message: str) -> None:
    sys.stderr.write(f"WARNING: {message}\n")
