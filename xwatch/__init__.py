"""Folder-watch service components: data paths, daily log mailing and event pipelines."""

__version__ = "0.1.0"
__all__ = ["paths", "mailer", "pipeline"]