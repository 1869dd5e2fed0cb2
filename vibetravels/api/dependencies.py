"""Request dependencies."""

from fastapi import Request

from vibetravels.bootstrap import Services


def get_services(request: Request) -> Services:
    """Components built at application startup."""
    return request.app.state.services
