"""Project status projection package."""

from docengine.projects.projector import ProjectStatusProjector, project_status

__all__ = ["ProjectStatusProjector", "project_status"]
