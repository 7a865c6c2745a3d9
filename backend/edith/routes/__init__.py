from importlib import import_module

modules = [
    'study_executions',
]

for m in modules:
    import_module(f'.{m}', __name__)

__all__ = modules
