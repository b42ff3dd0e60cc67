# Overview: Typed domain errors raised by the workflow engine and mapped to HTTP responses.

"""
Error taxonomy.

Every failed command surfaces as exactly one DomainError subclass. Services
raise; routes translate with error_response(). Nothing in the engine swallows
a failed mutation: the retry wrapper rolls the session back and re-raises.
"""

from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """Base class for all typed engine errors."""

    code = "DOMAIN_ERROR"
    status_code = 400

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": self.code}
        payload.update(self.details)
        return payload


class ValidationError(DomainError, ValueError):
    """Malformed quantities, costs, or missing required notes."""

    code = "VALIDATION_ERROR"
    status_code = 400


class Unauthorized(DomainError):
    """Actor lacks the role or ownership required for the command."""

    code = "UNAUTHORIZED"
    status_code = 403


class NotFound(DomainError):
    code = "NOT_FOUND"
    status_code = 404


class InvalidTransition(DomainError):
    """Requested status edge is not in the transition table."""

    code = "INVALID_TRANSITION"
    status_code = 409


class AlreadyProcessed(DomainError):
    """The aggregate already reached the requested state (duplicate or concurrent call)."""

    code = "ALREADY_PROCESSED"
    status_code = 409


class IncompleteQuotation(DomainError):
    """A quotation submission left one or more PO items unquoted."""

    code = "INCOMPLETE_QUOTATION"
    status_code = 422


class InsufficientStock(DomainError):
    """An order cannot be confirmed against current stock."""

    code = "INSUFFICIENT_STOCK"
    status_code = 409


class NegativeStock(DomainError):
    """Ledger-level guard: an append would drive on-hand below zero."""

    code = "NEGATIVE_STOCK"
    status_code = 409


class ImmutabilityViolation(DomainError):
    """Attempted update or delete of an append-only row."""

    code = "IMMUTABLE_RECORD"
    status_code = 409


def error_response(exc: DomainError):
    """Build a (body, status) pair for a Flask route."""
    from flask import jsonify

    return jsonify(exc.to_dict()), exc.status_code
