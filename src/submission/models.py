# src/submission/models.py — v1
"""Submission intake models: RepositoryRecord, SubmissionStatus."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field

from shipyard.core.models import DeveloperSubmissionForm, WireModel
from shipyard.pipeline.models import DeploymentPipeline

RepositoryStatus = Literal[
    "submitted", "under_review", "approved", "rejected", "published"
]
PipelineTemplateName = Literal["basic", "comprehensive"]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class RepositoryRecord(BaseModel):
    """One developer submission and the outcome of its pipeline runs."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    developer_id: str = ""
    name: str
    repository_url: str
    repository_type: str
    description: str = ""
    submission_type: str = "new_app"
    app_category: str = ""
    package_name: str
    package_version: str
    status: RepositoryStatus = "submitted"
    pipeline_template: PipelineTemplateName = "comprehensive"
    package_url: str | None = None
    pipeline_ids: list[str] = Field(default_factory=list)
    submission: DeveloperSubmissionForm
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @classmethod
    def from_submission(
        cls,
        form: DeveloperSubmissionForm,
        developer_id: str = "",
        template: PipelineTemplateName = "comprehensive",
    ) -> RepositoryRecord:
        return cls(
            developer_id=developer_id,
            name=form.app_info.name,
            repository_url=form.repository.url,
            repository_type=form.repository.type,
            description=form.app_info.description,
            app_category=form.app_info.category,
            package_name=form.technical.package_name,
            package_version=form.technical.version,
            status="under_review",
            pipeline_template=template,
            submission=form,
        )


class SubmissionRequest(WireModel):
    """Body of POST /submissions."""

    submission_data: DeveloperSubmissionForm
    pipeline_template: PipelineTemplateName = "comprehensive"


class SubmissionStatus(WireModel):
    """Status read model: repository record plus its latest pipeline."""

    repository: RepositoryRecord
    latest_pipeline: DeploymentPipeline | None = None
