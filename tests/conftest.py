import os

# The app reads settings at import time; keep every test module on the memory backend
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")
