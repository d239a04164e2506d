# This project was developed with assistance from AI tools.
"""RFC 7807 Problem Details error response schema."""

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """RFC 7807 Problem Details for HTTP APIs.

    Workflow failures add the extension members ``code``, ``message``,
    ``field`` and ``context`` so clients can branch on a stable code.

    See https://datatracker.ietf.org/doc/html/rfc7807
    """

    type: str = Field(
        default="about:blank",
        description="URI reference identifying the problem type.",
    )
    title: str = Field(description="Short human-readable summary of the problem.")
    status: int = Field(description="HTTP status code.")
    detail: str = Field(
        default="",
        description="Human-readable explanation specific to this occurrence.",
    )
    request_id: str = Field(
        default="",
        description="Correlation ID for tracing this request in logs.",
    )
    code: str | None = Field(
        default=None,
        description="Machine-readable error code, e.g. OUT_OF_SEQUENCE.",
    )
    message: str | None = Field(default=None, description="Error message for display.")
    field: str | None = Field(
        default=None,
        description="Input field the error refers to, when there is one.",
    )
    context: dict | None = Field(
        default=None,
        description="Structured details, e.g. shortfall for insufficient balance.",
    )
