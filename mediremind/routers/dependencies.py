from fastapi import HTTPException, Request

from mediremind.services.session import SessionController


def get_session(request: Request) -> SessionController:
    """Return the session controller built by the app lifespan."""
    session = getattr(request.app.state, "session", None)
    if session is None:
        raise HTTPException(status_code=503, detail="Session not initialised")
    return session
