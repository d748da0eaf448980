"""Model provider selection and the chat-completion client.

Model identifiers follow a prefix convention:

- ``azure:<deployment>`` uses Azure OpenAI,
- ``openai:<model>`` uses the OpenAI API,
- anything else is the name of a model served by the local Ollama server.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass

import requests
from langchain.chat_models import init_chat_model
from langchain.messages import HumanMessage
from langchain_core.runnables import Runnable
from langsmith import traceable

from amv.errors import EmptyResponseError, ProviderConfigurationError


DEFAULT_MODEL_IDENTIFIER = "ministral-3"
DEFAULT_OLLAMA_HOST = "http://localhost:11434"
DEFAULT_AZURE_API_VERSION = "2024-10-21"

# Low temperature keeps the model close to a literal application of the rules
SUGGESTION_TEMPERATURE = 0.3

OLLAMA = "ollama"
AZURE_OPENAI = "azure_openai"
OPENAI = "openai"

AZURE_REQUIRED_ENV = ("AZURE_OPENAI_ENDPOINT", "AZURE_OPENAI_API_KEY")
OPENAI_REQUIRED_ENV = ("OPENAI_API_KEY",)

# prefix -> (provider, label, required environment variables)
HOSTED_PROVIDERS = {
    "azure:": (AZURE_OPENAI, "Azure OpenAI", AZURE_REQUIRED_ENV),
    "openai:": (OPENAI, "OpenAI", OPENAI_REQUIRED_ENV),
}


@dataclass(frozen=True)
class ProviderConfig:
    """Provider selected for a model identifier."""

    provider: str
    model: str
    label: str
    required_env: tuple[str, ...] = ()

    @property
    def is_local(self) -> bool:
        return self.provider == OLLAMA

    def missing_env(self, environ: Mapping[str, str] | None = None) -> list[str]:
        environ = os.environ if environ is None else environ
        return [name for name in self.required_env if not environ.get(name, "").strip()]


def ollama_base_url() -> str:
    """Base URL of the local Ollama server, honouring OLLAMA_HOST."""
    host = os.environ.get("OLLAMA_HOST", "").strip() or DEFAULT_OLLAMA_HOST
    if "://" not in host:
        host = f"http://{host}"
    return host.rstrip("/")


def resolve_provider(model_identifier: str) -> ProviderConfig:
    """Select the provider for a model identifier.

    Raises:
        ProviderConfigurationError: If the identifier is blank or names a provider without a model.
    """
    identifier = model_identifier.strip()
    if not identifier:
        raise ProviderConfigurationError("No model identifier given.")

    lowered = identifier.lower()
    for prefix, (provider, label, required_env) in HOSTED_PROVIDERS.items():
        if lowered.startswith(prefix):
            model = identifier[len(prefix) :].strip()
            if not model:
                raise ProviderConfigurationError(
                    f"Model identifier '{identifier}' does not name a {label} deployment or model."
                )
            return ProviderConfig(provider=provider, model=model, label=label, required_env=required_env)

    return ProviderConfig(provider=OLLAMA, model=identifier, label="Ollama")


def check_configuration(config: ProviderConfig, environ: Mapping[str, str] | None = None) -> None:
    """Fail fast when a hosted provider's credentials are absent.

    Raises:
        ProviderConfigurationError: Naming every missing environment variable.
    """
    missing = config.missing_env(environ)
    if missing:
        raise ProviderConfigurationError(
            f"{config.label} is not configured. Missing environment variable(s): {', '.join(missing)}",
            missing=missing,
        )


def build_chat_model(config: ProviderConfig) -> Runnable:
    """Create the LangChain chat model for a provider, in JSON-object mode."""
    if config.provider == OLLAMA:
        return init_chat_model(
            model=config.model,
            model_provider=OLLAMA,
            base_url=ollama_base_url(),
            temperature=SUGGESTION_TEMPERATURE,
            format="json",
        )

    if config.provider == AZURE_OPENAI:
        llm = init_chat_model(
            model=config.model,
            model_provider=AZURE_OPENAI,
            azure_deployment=config.model,
            api_version=os.environ.get("AZURE_OPENAI_API_VERSION", "").strip() or DEFAULT_AZURE_API_VERSION,
            temperature=SUGGESTION_TEMPERATURE,
        )
    else:
        llm = init_chat_model(model=config.model, model_provider=OPENAI, temperature=SUGGESTION_TEMPERATURE)

    return llm.bind(response_format={"type": "json_object"})


def _content_text(content) -> str:
    if isinstance(content, str):
        return content
    # Content blocks
    parts = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


class ModelClient:
    """Issues single chat-completion requests. Errors propagate; retrying is up to the caller."""

    def __init__(self, llm: Runnable, config: ProviderConfig | None = None) -> None:
        self.llm = llm
        self.config = config

    @traceable(name="amv.complete")
    def complete(self, prompt: str) -> str:
        """Send one prompt and return the raw response text.

        Raises:
            EmptyResponseError: If the provider answered without content.
        """
        response = self.llm.invoke([HumanMessage(content=prompt)])
        text = _content_text(getattr(response, "content", response))
        if not text.strip():
            raise EmptyResponseError("No response from AI model")
        return text


def create_model_client(model_identifier: str) -> ModelClient:
    """Resolve, validate and build a client for a model identifier.

    Raises:
        ProviderConfigurationError: Before any network traffic, if the identifier or environment is unusable.
    """
    config = resolve_provider(model_identifier)
    check_configuration(config)
    return ModelClient(build_chat_model(config), config)


def provider_status(environ: Mapping[str, str] | None = None) -> dict[str, bool]:
    """Report which providers can be used with the current environment."""
    status = {OLLAMA: True}
    for provider, label, required_env in HOSTED_PROVIDERS.values():
        config = ProviderConfig(provider=provider, model="", label=label, required_env=required_env)
        status[provider] = not config.missing_env(environ)
    return status


def list_ollama_models(timeout: float = 5.0) -> list[str]:
    """Names of the models installed on the local Ollama server.

    Raises:
        requests.RequestException: If the server cannot be reached or answers with an error.
    """
    response = requests.get(f"{ollama_base_url()}/api/tags", timeout=timeout)
    response.raise_for_status()
    return sorted(model["name"] for model in response.json().get("models", []))
