"""panozoom - DeepZoom tile pyramids from multi-image panoramas."""

__version__ = "0.1.0"


# Suppress libvips module-loading warnings (jxl, magick, poppler) during import.
# Must run before any pyvips import anywhere in the package.
def _import_pyvips_quiet():
    """Import pyvips with C-level stderr suppressed to hide module warnings."""
    import logging
    import os
    import sys

    _logger = logging.getLogger(__name__)
    os.environ.setdefault("VIPS_WARNING", "0")

    try:
        stderr_fd = sys.stderr.fileno()
    except (AttributeError, OSError, ValueError):
        # fileno() unavailable (captured stderr, embedded interpreters)
        try:
            import pyvips  # noqa: F401
        except (ImportError, OSError) as e:
            _logger.debug("pyvips not available: %s", e)
        return

    # libvips writes to the C-level descriptor, so redirect_stderr is not enough
    old_stderr_fd = os.dup(stderr_fd)
    devnull = os.open(os.devnull, os.O_WRONLY)
    try:
        os.dup2(devnull, stderr_fd)
        import pyvips  # noqa: F401
    except (ImportError, OSError) as e:
        _logger.debug("pyvips import issue: %s", e)
    finally:
        os.dup2(old_stderr_fd, stderr_fd)
        os.close(old_stderr_fd)
        os.close(devnull)


_import_pyvips_quiet()
del _import_pyvips_quiet
