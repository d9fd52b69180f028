"""Versioned storage for the generation model configuration"""

import json
import logging
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.analyzer.model_registry import ModelConfiguration, default_model_config
from app.models.database import ModelConfigVersion

logger = logging.getLogger(__name__)


class ModelConfigConflictError(Exception):
    """Another configuration was saved since the caller read the active one"""


class ModelConfigStore:
    """Append-only configuration history; the highest version is active"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _latest(self) -> Optional[ModelConfigVersion]:
        result = await self.session.execute(
            select(ModelConfigVersion).order_by(ModelConfigVersion.version.desc()).limit(1)
        )
        return result.scalar_one_or_none()

    async def get_active(self) -> ModelConfiguration:
        """Active configuration, or the built-in default when none was saved"""
        latest = await self._latest()
        if latest is None:
            return default_model_config()
        return _to_configuration(latest)

    async def set_active(
        self,
        model_config: ModelConfiguration,
        updated_by: str = None,
        expected_version: int = None
    ) -> ModelConfiguration:
        """Validate and store a new version.

        When `expected_version` is given it must match the current active
        version (0 when only the default exists).
        """
        model_config.validate()

        current = (await self.session.execute(
            select(func.max(ModelConfigVersion.version))
        )).scalar() or 0

        if expected_version is not None and expected_version != current:
            raise ModelConfigConflictError(
                f"Configuration changed: expected version {expected_version}, current is {current}"
            )

        record = ModelConfigVersion(
            version=current + 1,
            primary_model=model_config.primary,
            fallback_model=model_config.fallback,
            enabled_models_json=json.dumps(list(model_config.enabled)),
            updated_by=updated_by,
        )
        self.session.add(record)
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            raise ModelConfigConflictError(f"Configuration version {current + 1} was saved concurrently") from e

        logger.info(f"Model configuration v{record.version} saved by {updated_by or 'unknown'}")
        return _to_configuration(record)

    async def history(self, limit: int = 20) -> List[ModelConfiguration]:
        result = await self.session.execute(
            select(ModelConfigVersion).order_by(ModelConfigVersion.version.desc()).limit(limit)
        )
        return [_to_configuration(r) for r in result.scalars().all()]


def _to_configuration(record: ModelConfigVersion) -> ModelConfiguration:
    return ModelConfiguration(
        primary=record.primary_model,
        fallback=record.fallback_model,
        enabled=json.loads(record.enabled_models_json or "[]"),
        version=record.version,
    )
