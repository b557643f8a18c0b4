"""Git activity monitor: flags suspicious GitHub activity and streams incident summaries."""

__version__ = "0.1.0"
