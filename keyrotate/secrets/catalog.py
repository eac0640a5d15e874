"""Catalog of known secret keys and the providers that use them."""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import FrozenSet, Iterable, Mapping, Optional, Tuple

from keyrotate.utils.errors import UnknownSecretKeyError, create_error_suggestions

# Logical key names by provider constant
SECRET_KEYS: Mapping[str, str] = MappingProxyType(
    {
        "HORDE": "api_key_horde",
        "MANCER": "api_key_mancer",
        "VLLM": "api_key_vllm",
        "APHRODITE": "api_key_aphrodite",
        "TABBY": "api_key_tabby",
        "OPENAI": "api_key_openai",
        "NOVEL": "api_key_novel",
        "CLAUDE": "api_key_claude",
        "DEEPL": "deepl",
        "LIBRE": "libre",
        "LIBRE_URL": "libre_url",
        "LINGVA_URL": "lingva_url",
        "OPENROUTER": "api_key_openrouter",
        "SCALE": "api_key_scale",
        "AI21": "api_key_ai21",
        "SCALE_COOKIE": "scale_cookie",
        "ONERING_URL": "oneringtranslator_url",
        "DEEPLX_URL": "deeplx_url",
        "MAKERSUITE": "api_key_makersuite",
        "SERPAPI": "api_key_serpapi",
        "TOGETHERAI": "api_key_togetherai",
        "MISTRALAI": "api_key_mistralai",
        "CUSTOM": "api_key_custom",
        "OOBA": "api_key_ooba",
        "INFERMATICAI": "api_key_infermaticai",
        "DREAMGEN": "api_key_dreamgen",
        "NOMICAI": "api_key_nomicai",
        "KOBOLDCPP": "api_key_koboldcpp",
        "LLAMACPP": "api_key_llamacpp",
        "COHERE": "api_key_cohere",
        "PERPLEXITY": "api_key_perplexity",
        "GROQ": "api_key_groq",
        "AZURE_TTS": "api_key_azure_tts",
        "FEATHERLESS": "api_key_featherless",
        "ZEROONEAI": "api_key_01ai",
        "HUGGINGFACE": "api_key_huggingface",
        "STABILITY": "api_key_stability",
        "BLOCKENTROPY": "api_key_blockentropy",
        "CUSTOM_OPENAI_TTS": "api_key_custom_openai_tts",
        "TAVILY": "api_key_tavily",
        "NANOGPT": "api_key_nanogpt",
        "BFL": "api_key_bfl",
        "GENERIC": "api_key_generic",
        "DEEPSEEK": "api_key_deepseek",
    }
)

# URL-type keys that carry no credential and may always be read back
EXPORTABLE_KEYS: FrozenSet[str] = frozenset(
    {
        SECRET_KEYS["LIBRE_URL"],
        SECRET_KEYS["LINGVA_URL"],
        SECRET_KEYS["ONERING_URL"],
        SECRET_KEYS["DEEPLX_URL"],
    }
)

CHAT_COMPLETION_SOURCES = (
    "AI21",
    "BLOCKENTROPY",
    "COHERE",
    "CLAUDE",
    "CUSTOM",
    "DEEPSEEK",
    "GROQ",
    "MAKERSUITE",
    "MISTRALAI",
    "NANOGPT",
    "OPENAI",
    "OPENROUTER",
    "PERPLEXITY",
    "SCALE",
    "ZEROONEAI",
)

# Source identifiers that are not simply the lower-cased constant name
SOURCE_NAMES: Mapping[str, str] = MappingProxyType({"ZEROONEAI": "01ai"})

TEXTGEN_TYPES = (
    "APHRODITE",
    "DREAMGEN",
    "FEATHERLESS",
    "GENERIC",
    "HUGGINGFACE",
    "INFERMATICAI",
    "KOBOLDCPP",
    "LLAMACPP",
    "MANCER",
    "OOBA",
    "OPENROUTER",
    "TABBY",
    "TOGETHERAI",
    "VLLM",
)


@dataclass(frozen=True)
class ProviderKey:
    """One row of the provider lookup: which key an API/source pair uses."""

    api: str
    source: Optional[str]
    key: str

    def matches(self, api: str, source: Optional[str]) -> bool:
        if self.api != api:
            return False
        return self.source is None or self.source == source


@dataclass(frozen=True)
class KeyCatalog:
    """Immutable set of known logical keys, exportable keys and provider rows."""

    keys: Tuple[str, ...]
    exportable: FrozenSet[str] = field(default_factory=frozenset)
    providers: Tuple[ProviderKey, ...] = ()

    def is_known(self, key: str) -> bool:
        return key in self.keys

    def is_exportable(self, key: str) -> bool:
        return key in self.exportable

    def normalize(self, key: str) -> str:
        """
        Normalize a user-supplied key name and check it against the catalog.

        Args:
            key: Raw key name

        Returns:
            str: Trimmed, lower-cased key name

        Raises:
            UnknownSecretKeyError: If the key is not in the catalog
        """
        normalized = str(key or "").strip().lower()
        if not self.is_known(normalized):
            raise UnknownSecretKeyError(
                f"Unknown secret key: {key}",
                suggestions=create_error_suggestions("unknown_key"),
            )
        return normalized

    def resolve(
        self,
        key: Optional[str] = None,
        api: Optional[str] = None,
        source: Optional[str] = None,
    ) -> str:
        """
        Resolve the logical key for a command, inferring it from the provider
        when no explicit key is given.

        Args:
            key: Explicit key name (wins when present)
            api: Provider API family (e.g. openai, textgenerationwebui)
            source: Provider source/type within the API family

        Returns:
            str: Logical key name

        Raises:
            UnknownSecretKeyError: If the key is unknown or cannot be inferred
        """
        if key and str(key).strip():
            return self.normalize(key)

        if api:
            api_name = api.strip().lower()
            source_name = source.strip().lower() if source else None
            for row in self.providers:
                if row.matches(api_name, source_name):
                    return row.key

        raise UnknownSecretKeyError(
            "Secret key not provided or could not be inferred",
            details=f"api={api!r} source={source!r}" if api else None,
            suggestions=["Pass --key explicitly", "Or pass --api together with --source"],
        )

    def with_keys(
        self,
        keys: Iterable[str] = (),
        exportable: Iterable[str] = (),
        providers: Iterable[ProviderKey] = (),
    ) -> "KeyCatalog":
        """Return a new catalog extended with extra entries; this one is unchanged."""
        merged_keys = list(self.keys)
        for key in keys:
            if key not in merged_keys:
                merged_keys.append(key)

        merged_providers = list(self.providers)
        for row in providers:
            if row not in merged_providers:
                merged_providers.append(row)
            if row.key not in merged_keys:
                merged_keys.append(row.key)

        return KeyCatalog(
            keys=tuple(merged_keys),
            exportable=self.exportable | frozenset(exportable),
            providers=tuple(merged_providers),
        )


def build_default_catalog() -> KeyCatalog:
    """Build the catalog of every provider key the store knows about."""
    providers = [
        ProviderKey("novel", None, SECRET_KEYS["NOVEL"]),
        ProviderKey("koboldhorde", None, SECRET_KEYS["HORDE"]),
    ]
    for name in CHAT_COMPLETION_SOURCES:
        providers.append(ProviderKey("openai", SOURCE_NAMES.get(name, name.lower()), SECRET_KEYS[name]))
    for name in TEXTGEN_TYPES:
        providers.append(ProviderKey("textgenerationwebui", SOURCE_NAMES.get(name, name.lower()), SECRET_KEYS[name]))

    return KeyCatalog(
        keys=tuple(SECRET_KEYS.values()),
        exportable=EXPORTABLE_KEYS,
        providers=tuple(providers),
    )


DEFAULT_CATALOG = build_default_catalog()
