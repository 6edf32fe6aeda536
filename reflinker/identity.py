"""REFLINKER identity - version and banner."""

__version__ = "0.4.0"
__codename__ = "REFLINKER"
__tagline__ = "Issue and PR autolinks for commit messages and branch names"

BANNER = r"""
  ___ ___ ___ _    ___ _  _ _  _____ ___
 | _ \ __| __| |  |_ _| \| | |/ / __| _ \
 |   / _|| _|| |__ | || .` | ' <| _||   /
 |_|_\___|_| |____|___|_|\_|_|\_\___|_|_\
"""
