"""Project file codecs.

``stream`` holds the primitives blocks serialize themselves with;
``binary`` and ``xml`` frame whole projects.  The framing modules are
not imported here because they depend on :mod:`gcam.blocks`, which in
turn depends on ``stream``.
"""
