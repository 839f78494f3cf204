from __future__ import annotations

import os
import tempfile

# Settings are read when the app module is imported, so point them away from
# the working directory before any test module imports it.
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("STORAGE_ROOT", tempfile.mkdtemp(prefix="member-registry-"))
