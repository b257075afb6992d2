"""Pipeline around the tiling engine: codec, input files, sinks and the builder."""

from .backends import VIPSBackend, is_vips_available
from .metadata import OutputStatus, PyramidManifest, check_output_status
from .pyramid import PanoramaPyramidBuilder, RunState, TilingConfig, build_pyramid
from .sink import DeepZoomSink, TileSink
from .sources import collect_image_files, find_image_files, open_image_sources

__all__ = [
    "VIPSBackend",
    "is_vips_available",
    "OutputStatus",
    "PyramidManifest",
    "check_output_status",
    "PanoramaPyramidBuilder",
    "RunState",
    "TilingConfig",
    "build_pyramid",
    "DeepZoomSink",
    "TileSink",
    "collect_image_files",
    "find_image_files",
    "open_image_sources",
]
