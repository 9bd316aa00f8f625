"""Shared pytest setup."""

import os
import tempfile

# streamcatalog.main builds an app at import time; keep it out of ./data
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="streamcatalog-test-"))
