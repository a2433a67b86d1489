"""
Planforge - plan orchestration engine for assistant agents.

Planforge turns a natural-language goal into a structured multi-step plan,
sequences execution of that plan against an external text-completion service,
and keeps resumable, cancellable, checkpointed progress across steps.
"""

__version__ = "0.1.0"

# Load environment variables from project root .env (if present).
# This makes PLANFORGE_* settings available no matter which submodule is imported.
try:
    from pathlib import Path
    from dotenv import load_dotenv

    _repo_root = Path(__file__).resolve().parents[2]
    _env_path = _repo_root / ".env"
    if _env_path.exists():
        load_dotenv(_env_path, override=False)
except Exception:
    # Never fail import due to dotenv loading.
    pass
