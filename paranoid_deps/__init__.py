"""
Paranoid Deps

A tool that flags dependencies whose resolved version was published too recently.
"""

__version__ = "0.1.0"

from .auditor import AuditResult, DependencyAuditor
from .cli import main
from .validator import all_safe, validate

__all__ = ["main", "AuditResult", "DependencyAuditor", "all_safe", "validate"]
