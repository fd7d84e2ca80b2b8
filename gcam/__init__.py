"""GCAM: block-tree CAM engine producing G-code for CNC mills.

Typical use::

    from gcam import Project
    from gcam.blocks import Tool, DrillHoles, Point

    project = Project.from_config()
    project.new_program()
    tool = project.insert_before_end(Tool(project))
    holes = project.insert_before_end(DrillHoles(project))
    hole = holes.append(Point(project, holes))
    hole.p = (1.0, 2.0)
    print(project.make_all())
"""

from gcam.constants import GCAM_VERSION as __version__
from gcam.errors import BlockError, CodecError, GCamError, GCodeError, UnsupportedOperation
from gcam.project import Project, detect_format

__all__ = [
    "BlockError",
    "CodecError",
    "GCamError",
    "GCodeError",
    "Project",
    "UnsupportedOperation",
    "__version__",
    "detect_format",
]
