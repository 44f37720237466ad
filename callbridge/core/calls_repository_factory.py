import os
from callbridge.core.call_repository import CallRepository

_repo: CallRepository = None


def get_call_repository() -> CallRepository:
    global _repo
    if _repo is not None:
        return _repo

    backend = os.getenv("CALLS_REPO_BACKEND", "memory").lower()

    if backend == "supabase":
        from callbridge.core.calls_supabase import SupabaseCallRepository
        _repo = SupabaseCallRepository()
    else:
        from callbridge.core.call_repository_inmemory import InMemoryCallRepository
        _repo = InMemoryCallRepository()

    return _repo
