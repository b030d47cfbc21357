from . import lib  # so: from modules.job_harvest import lib
from .main import run  # so: from modules.job_harvest import run

__all__ = ["lib", "run"]
