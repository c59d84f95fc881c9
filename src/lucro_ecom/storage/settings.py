"""Paramétrages de frais par utilisateur, avec un seul paramétrage par défaut."""

from __future__ import annotations

import dataclasses
import logging
import uuid

from lucro_ecom.config.loader import AppConfig
from lucro_ecom.models import FeeSettings, StorageError

logger = logging.getLogger(__name__)


class SettingsRepository:
    """Dépôt des paramétrages de frais.

    L'unicité du paramétrage par défaut est garantie à l'écriture : enregistrer
    un paramétrage ``is_default`` retire d'abord le drapeau de tous les autres
    paramétrages du même propriétaire.
    """

    def __init__(self) -> None:
        self._by_owner: dict[str, list[FeeSettings]] = {}

    @classmethod
    def from_config(cls, config: AppConfig, owner_id: str) -> SettingsRepository:
        """Initialise le dépôt avec les paramétrages du fichier de configuration."""
        repository = cls()
        for settings in config.fee_settings:
            repository.save(settings, owner_id)
        owned = repository.list(owner_id)
        if owned and not any(s.is_default for s in owned):
            repository.set_default(owned[0].id or "", owner_id)
        return repository

    def list(self, owner_id: str) -> list[FeeSettings]:
        return list(self._by_owner.get(owner_id, []))

    def get(self, settings_id: str, owner_id: str) -> FeeSettings:
        for settings in self._by_owner.get(owner_id, []):
            if settings.id == settings_id:
                return settings
        raise StorageError(f"Paramétrage '{settings_id}' introuvable pour le propriétaire '{owner_id}'")

    def get_default(self, owner_id: str) -> FeeSettings | None:
        """Paramétrage par défaut, sinon le premier enregistré, sinon None."""
        owned = self._by_owner.get(owner_id, [])
        for settings in owned:
            if settings.is_default:
                return settings
        return owned[0] if owned else None

    def save(self, settings: FeeSettings, owner_id: str) -> FeeSettings:
        """Crée ou remplace un paramétrage (identifié par ``id``)."""
        stored = dataclasses.replace(settings, id=settings.id or uuid.uuid4().hex, owner_id=owner_id)
        owned = self._by_owner.setdefault(owner_id, [])

        if stored.is_default:
            for idx, other in enumerate(owned):
                if other.is_default and other.id != stored.id:
                    owned[idx] = dataclasses.replace(other, is_default=False)
                    logger.info("Paramétrage '%s' n'est plus le paramétrage par défaut", other.name)

        for idx, existing in enumerate(owned):
            if existing.id == stored.id:
                owned[idx] = stored
                break
        else:
            owned.append(stored)
        return stored

    def set_default(self, settings_id: str, owner_id: str) -> FeeSettings:
        return self.save(dataclasses.replace(self.get(settings_id, owner_id), is_default=True), owner_id)

    def delete(self, settings_id: str, owner_id: str) -> None:
        settings = self.get(settings_id, owner_id)
        self._by_owner[owner_id] = [s for s in self._by_owner[owner_id] if s.id != settings_id]
        logger.info("Paramétrage '%s' supprimé", settings.name)
