"""pdsql plugin namespace package.

Brief:
    Holds the resolve plugins. Built-in plugin modules are listed in
    ``pdsql.plugins.resolve.registry.BUILTIN_MODULES``.
"""
