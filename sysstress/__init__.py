"""CPU and memory stress testing with pass/fail verdicts and performance reporting."""

__version__ = "0.1.0"