"""Restaurant point-of-sale services.

Service code lives under ``apps/<service>/app``; the service directories are
namespace packages so ``apps.pos.app.main`` imports without extra
``__init__`` files.
"""
