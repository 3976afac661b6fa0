from __future__ import annotations


class ContractsError(RuntimeError):
    """Base error for contracts package failures"""


class ContractsResourceError(ContractsError):
    """
    Raised when a required contract resource file cannot be located or read

    Raised as a RuntimeError instead of FileNotFoundError so callers treat it as
    'the contracts package is broken or mispackaged' rather than 'user path not found'.
    """


class HandoffValidationError(ContractsError):
    """A build/deploy handoff payload did not satisfy the shipped contract"""
