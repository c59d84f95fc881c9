"""Chargement et validation de la configuration YAML."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path

import yaml

from lucro_ecom.models import ConfigError, FeeSettings

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 1000
DEFAULT_EXCLUDED_ORDER_STATUSES = ["Cancelado", "Não pago"]

RATE_FIELDS = (
    "commission_rate",
    "affiliate_rate",
    "tax_rate",
    "entry_invoice_percent",
    "pre_tax_discount_rate",
    "advance_payment_percent",
    "advance_payment_rate",
)
AMOUNT_FIELDS = ("per_item_fee", "ad_spend")
BANK_PROFILE_KEYS = ("date", "description", "amount", "balance")


@dataclass
class BankProfile:
    """Table d'alias d'un profil bancaire (non frozen — dataclass technique).

    Les noms sont en minuscules : ils sont comparés par inclusion aux en-têtes
    du fichier, eux-mêmes passés en minuscules.
    """

    date: list[str]
    amount: list[str]
    description: list[str] = field(default_factory=list)
    balance: list[str] = field(default_factory=list)

    def as_mapping(self) -> dict[str, list[str]]:
        """Alias par champ canonique, dans l'ordre du diagnostic."""
        return {
            "date": self.date,
            "description": self.description,
            "amount": self.amount,
            "balance": self.balance,
        }


@dataclass
class AppConfig:
    """Configuration complète de l'application (non frozen — dataclass technique)."""

    fee_settings: list[FeeSettings]
    page_size: int = DEFAULT_PAGE_SIZE
    default_bank_profile: str = "generic"
    excluded_order_statuses: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDED_ORDER_STATUSES))
    bank_profiles: dict[str, BankProfile] = field(default_factory=dict)

    def default_settings(self) -> FeeSettings:
        """Retourne le paramétrage marqué par défaut (le premier à défaut)."""
        for settings in self.fee_settings:
            if settings.is_default:
                return settings
        return self.fee_settings[0]

    def get_settings(self, name: str | None) -> FeeSettings:
        """Retourne le paramétrage nommé, ou le paramétrage par défaut si ``name`` est None."""
        if name is None:
            return self.default_settings()
        for settings in self.fee_settings:
            if settings.name == name:
                return settings
        raise ConfigError(
            f"Paramétrage '{name}' introuvable. "
            f"Paramétrages disponibles : {', '.join(s.name for s in self.fee_settings)}"
        )


def _load_yaml(filepath: Path) -> dict[str, object]:
    """Charge un fichier YAML et retourne son contenu."""
    if not filepath.exists():
        raise ConfigError(f"Fichier de configuration manquant : {filepath}")
    try:
        with open(filepath, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"YAML malformé dans {filepath} : {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Le fichier {filepath} doit contenir un mapping YAML (reçu : {type(data).__name__})")
    return data


def _require_key(data: dict[str, object], key: str, context: str) -> object:
    """Vérifie qu'une clé existe dans un dictionnaire."""
    if key not in data:
        raise ConfigError(f"Clé obligatoire '{key}' manquante dans {context}")
    return data[key]


def _to_decimal(raw: object, key: str, context: str) -> Decimal:
    """Convertit un nombre YAML en Decimal (via str pour éviter les artefacts float)."""
    if isinstance(raw, bool) or not isinstance(raw, (int, float, str)):
        raise ConfigError(f"'{key}' doit être un nombre dans {context}")
    try:
        value = Decimal(str(raw))
    except InvalidOperation as e:
        raise ConfigError(f"'{key}' doit être un nombre dans {context} (reçu : {raw!r})") from e
    if not value.is_finite():
        raise ConfigError(f"'{key}' doit être un nombre fini dans {context}")
    return value


def validate_fee_settings(entry: dict[str, object], context: str) -> FeeSettings:
    """Valide un paramétrage de frais (taux entre 0 et 1, montants positifs)."""
    name = str(_require_key(entry, "name", context)).strip()
    if not name:
        raise ConfigError(f"'name' vide dans {context}")
    entry_context = f"{context}/{name}"

    values: dict[str, Decimal] = {}
    for key in RATE_FIELDS:
        if key not in entry:
            if key in ("commission_rate", "affiliate_rate", "tax_rate", "entry_invoice_percent"):
                raise ConfigError(f"Clé obligatoire '{key}' manquante dans {entry_context}")
            values[key] = Decimal("0")
            continue
        rate = _to_decimal(entry[key], key, entry_context)
        if rate < 0 or rate > 1:
            raise ConfigError(
                f"Taux '{key}' invalide dans {entry_context} : {rate} (doit être entre 0 et 1)"
            )
        values[key] = rate

    for key in AMOUNT_FIELDS:
        amount = _to_decimal(entry.get(key, 0), key, entry_context)
        if amount < 0:
            raise ConfigError(f"Montant '{key}' négatif dans {entry_context} : {amount}")
        values[key] = amount

    is_default = entry.get("is_default", False)
    if not isinstance(is_default, bool):
        raise ConfigError(f"'is_default' doit être un booléen dans {entry_context}")

    return FeeSettings(
        name=name,
        is_default=is_default,
        id=str(entry["id"]) if "id" in entry else None,
        **values,
    )


def _validate_fee_settings_file(data: dict[str, object]) -> list[FeeSettings]:
    """Valide et extrait la liste des paramétrages de frais."""
    context = "fee_settings.yaml"

    raw_list = _require_key(data, "settings", context)
    if not isinstance(raw_list, list) or len(raw_list) == 0:
        raise ConfigError(f"'settings' doit contenir au moins un paramétrage dans {context}")

    settings: list[FeeSettings] = []
    seen_names: set[str] = set()
    for idx, entry in enumerate(raw_list):
        if not isinstance(entry, dict):
            raise ConfigError(f"Le paramétrage n°{idx + 1} doit être un mapping dans {context}")
        fee_settings = validate_fee_settings(entry, context)
        if fee_settings.name in seen_names:
            raise ConfigError(f"Paramétrage '{fee_settings.name}' défini deux fois dans {context}")
        seen_names.add(fee_settings.name)
        settings.append(fee_settings)

    defaults = [s.name for s in settings if s.is_default]
    if len(defaults) > 1:
        raise ConfigError(
            f"Un seul paramétrage peut être marqué par défaut dans {context} "
            f"(trouvés : {', '.join(defaults)})"
        )
    if not defaults:
        logger.info("Aucun paramétrage par défaut — '%s' retenu", settings[0].name)

    return settings


def _validate_alias_list(raw: object, key: str, context: str) -> list[str]:
    if not isinstance(raw, list) or not all(isinstance(a, str) and a.strip() for a in raw):
        raise ConfigError(f"'{key}' doit être une liste de noms de colonnes non vides dans {context}")
    return [a.strip().lower() for a in raw]


def _validate_import(data: dict[str, object]) -> tuple[int, str, list[str], dict[str, BankProfile]]:
    """Valide et extrait les paramètres d'import."""
    context = "import.yaml"

    raw_page_size = data.get("page_size", DEFAULT_PAGE_SIZE)
    if isinstance(raw_page_size, bool) or not isinstance(raw_page_size, int) or raw_page_size <= 0:
        raise ConfigError(f"'page_size' doit être un entier strictement positif dans {context}")

    default_bank_profile = str(data.get("default_bank_profile", "generic"))

    raw_statuses = data.get("excluded_order_statuses", DEFAULT_EXCLUDED_ORDER_STATUSES)
    if not isinstance(raw_statuses, list):
        raise ConfigError(f"'excluded_order_statuses' doit être une liste dans {context}")
    excluded = [str(s) for s in raw_statuses]

    profiles_raw = data.get("bank_profiles", {})
    if not isinstance(profiles_raw, dict):
        raise ConfigError(f"'bank_profiles' doit être un mapping dans {context}")

    profiles: dict[str, BankProfile] = {}
    for profile_id, profile_data in profiles_raw.items():
        profile_context = f"{context}/bank_profiles/{profile_id}"
        if not isinstance(profile_data, dict):
            raise ConfigError(f"Le profil bancaire '{profile_id}' doit être un mapping dans {context}")
        unknown = set(profile_data) - set(BANK_PROFILE_KEYS)
        if unknown:
            raise ConfigError(f"Clés inconnues {sorted(unknown)} dans {profile_context}")
        profiles[str(profile_id)] = BankProfile(
            date=_validate_alias_list(_require_key(profile_data, "date", profile_context), "date", profile_context),
            amount=_validate_alias_list(
                _require_key(profile_data, "amount", profile_context), "amount", profile_context
            ),
            description=_validate_alias_list(profile_data.get("description", []), "description", profile_context),
            balance=_validate_alias_list(profile_data.get("balance", []), "balance", profile_context),
        )

    return raw_page_size, default_bank_profile, excluded, profiles


def load_config(config_dir: Path) -> AppConfig:
    """Charge et valide la configuration complète depuis un répertoire.

    Args:
        config_dir: Répertoire contenant ``fee_settings.yaml`` et ``import.yaml``.

    Returns:
        AppConfig validée.

    Raises:
        ConfigError: Si un fichier est manquant, malformé, ou contient des valeurs invalides.
    """
    logger.info("Chargement de la configuration depuis %s", config_dir)

    fee_data = _load_yaml(config_dir / "fee_settings.yaml")
    import_data = _load_yaml(config_dir / "import.yaml")

    fee_settings = _validate_fee_settings_file(fee_data)
    page_size, default_bank_profile, excluded, profiles = _validate_import(import_data)

    config = AppConfig(
        fee_settings=fee_settings,
        page_size=page_size,
        default_bank_profile=default_bank_profile,
        excluded_order_statuses=excluded,
        bank_profiles=profiles,
    )

    logger.debug("page_size: %s, profils bancaires surchargés: %s", config.page_size, sorted(profiles))

    return config
