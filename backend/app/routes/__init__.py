from importlib import import_module

modules = [
    'departments',
    'degrees',
    'courses',
    'enrollments',
    'timeline',
]

for m in modules:
    import_module(f'.{m}', __name__)

__all__ = modules
