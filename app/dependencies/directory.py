from fastapi import Request

from app.services.directory import Directory


def get_directory(request: Request) -> Directory:
    """The directory loaded at startup; empty until (or if) loading succeeded."""
    directory = getattr(request.app.state, "directory", None)
    return directory if directory is not None else Directory.empty()
