# thing_sim/__init__.py
