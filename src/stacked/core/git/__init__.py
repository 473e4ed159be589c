from stacked.core.git.abc import Git
from stacked.core.git.real import RealGit

__all__ = ["Git", "RealGit"]
