"""
Error taxonomy shared by the verifier, the credential manager and the API clients.

Every error carries the HTTP status it maps to, a short public message and a
``type`` tag for the Mini App. Internal causes stay in the exception chain
and in the logs; they are never rendered into a response body.
"""
from fastapi import Request
from fastapi.responses import JSONResponse


class AppError(Exception):
    status_code = 500
    message = "Internal server error"
    type = "server_error"

    def __init__(self, message: str = None, error_type: str = None):
        if message is not None:
            self.message = message
        if error_type is not None:
            self.type = error_type
        super().__init__(self.message)


# --- Inbound verification ---

class VerifyError(AppError):
    status_code = 401
    message = "Data verification failed."
    type = "verification_failed"


class MalformedInput(VerifyError):
    status_code = 400
    message = "Malformed authentication data"
    type = "malformed_input"


class SignatureMismatch(VerifyError):
    message = "Signature verification failed."
    type = "signature_mismatch"


class HashMismatch(SignatureMismatch):
    message = "Data verification failed."
    type = "hash_mismatch"


class StaleAuth(VerifyError):
    message = "Auth date is too old"
    type = "stale_auth"


# --- Outbound credentials / upstream APIs ---

class TokenError(AppError):
    message = "Could not obtain an access token"
    type = "token_error"


class UpstreamUnavailable(TokenError):
    message = "Upstream service unavailable"
    type = "upstream_unavailable"


class NotFound(AppError):
    status_code = 404
    message = "Not found"
    type = "not_found"


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "type": exc.type},
    )
