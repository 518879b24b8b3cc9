"""Organizes markdown notes into notebooks and works out which notebook applies to the current directory.

If you installed via ``pip``, run ``opennotes -h`` to get help.
Or, run ``python3 -m opennotes -h``.

To use the Python API, start with :class:`opennotes.resolver.Context` and :func:`opennotes.resolver.infer`.
"""
