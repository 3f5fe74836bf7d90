version = 'LockMint 0.4.0'
version_short = version.split()[-1]


def _lazy_import(name):
    """Lazy import to avoid pulling in aiohttp and fastapi at module load time."""
    import importlib
    if name == 'Controller':
        mod = importlib.import_module('lockmint.server.controller')
        return mod.Controller
    if name == 'Env':
        mod = importlib.import_module('lockmint.server.env')
        return mod.Env
    raise AttributeError(f'module {__name__!r} has no attribute {name!r}')


def __getattr__(name):
    return _lazy_import(name)
