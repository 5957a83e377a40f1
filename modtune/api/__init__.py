# modtune/api/__init__.py
"""
Auto-import submodules so that
    from modtune.api import presets, settings
works even when they haven't been imported elsewhere.
"""

from importlib import import_module as _import

for _name in ("presets", "settings"):
    _import(f"{__name__}.{_name}")

del _import, _name
