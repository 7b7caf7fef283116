"""
Route Dependencies

Routes reach the composed worker runtime through ``app.state.runtime``,
set by the application lifespan.
"""

from fastapi import HTTPException, Request


def get_runtime(request: Request):
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Worker runtime not started")
    return runtime
