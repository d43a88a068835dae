"""Configuration schema using Pydantic."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from wikiagent.prompts.tree import PromptNode, ResponseNode

PLUGIN_KINDS = (
    "fullReplacement",
    "dynamicPosition",
    "retrievalAugmentedGeneration",
    "modelContextProtocol",
    "toolCalling",
    "autoReply",
    "wikiSearch",
)

PARAM_FIELDS = {
    "fullReplacement": "full_replacement_param",
    "dynamicPosition": "dynamic_position_param",
    "retrievalAugmentedGeneration": "retrieval_augmented_generation_param",
    "modelContextProtocol": "model_context_protocol_param",
    "toolCalling": "tool_calling_param",
    "autoReply": "auto_reply_param",
    "wikiSearch": "wiki_search_param",
}


class ProviderModel(BaseModel):
    """Which backend and model to call."""
    provider: str = "openai"
    model: str = "gpt-4o-mini"
    embedding_model: str | None = None


class ModelParameters(BaseModel):
    """Sampling parameters passed to the LLM."""
    temperature: float | None = Field(default=None, ge=0, le=2)
    max_tokens: int | None = Field(default=None, ge=1)
    top_p: float | None = Field(default=None, ge=0, le=1)
    system_prompt: str | None = None


class AIApiConfig(BaseModel):
    """AI backend configuration for an agent definition."""
    api: ProviderModel | None = None
    model_parameters: ModelParameters | None = None

    def to_layer(self) -> dict[str, Any]:
        """Dict form with unset keys removed, ready for layered merging."""
        return self.model_dump(exclude_none=True)


class TriggerConfig(BaseModel):
    """When an auto-reply or retrieval plugin fires."""
    search: str = ""  # comma separated keywords, case-insensitive
    random_chance: float = Field(default=0.0, ge=0, le=1)
    filter: str = ""
    model: str | None = None  # model-based triggers are not evaluated


class ToolListPosition(BaseModel):
    """Where to inject a tool description into the prompt tree."""
    target_id: str
    position: Literal["before", "after"] = "after"


class WikiParam(BaseModel):
    """Wiki source for retrieval plugins."""
    workspace_name: str = ""
    filter: str = ""
    max_results: int = Field(default=10, ge=1)


class FullReplacementParam(BaseModel):
    target_id: str
    source_type: Literal["historyOfSession", "llmResponse"] = "historyOfSession"


class DynamicPositionParam(BaseModel):
    target_id: str
    type: Literal["before", "after", "relative"] = "after"


class RetrievalAugmentedGenerationParam(BaseModel):
    target_id: str
    position: Literal["before", "after", "relative", "absolute"] = "after"
    source_type: Literal["wiki"] = "wiki"
    wiki_param: WikiParam = Field(default_factory=WikiParam)
    trigger: TriggerConfig | None = None


class ModelContextProtocolParam(BaseModel):
    id: str
    target_id: str
    position: Literal["before", "after"] = "after"
    timeout_second: float | None = Field(default=None, gt=0)
    timeout_message: str = "MCP server call timed out"


class ToolCallingParam(BaseModel):
    target_id: str = ""
    match: str | None = None  # "/pattern/flags" or a bare pattern
    tool_list_position: ToolListPosition | None = None
    tool_result_duration: int | None = Field(default=None, ge=0)


class AutoReplyParam(BaseModel):
    target_id: str = ""
    text: str
    trigger: TriggerConfig | None = None
    max_auto_reply: int = Field(default=5, ge=0)


class WikiSearchParam(BaseModel):
    source_type: Literal["wiki"] = "wiki"
    tool_list_position: ToolListPosition | None = None
    tool_result_duration: int | None = Field(default=None, ge=0)


class PluginConfig(BaseModel):
    """One configured plugin of an agent definition.

    ``plugin_id`` stays a plain string so definitions naming a plugin this
    build does not ship still load; such entries are skipped at round start.
    """

    id: str
    plugin_id: str
    caption: str = ""
    content: str = ""
    forbid_overrides: bool = False
    full_replacement_param: FullReplacementParam | None = None
    dynamic_position_param: DynamicPositionParam | None = None
    retrieval_augmented_generation_param: RetrievalAugmentedGenerationParam | None = None
    model_context_protocol_param: ModelContextProtocolParam | None = None
    tool_calling_param: ToolCallingParam | None = None
    auto_reply_param: AutoReplyParam | None = None
    wiki_search_param: WikiSearchParam | None = None

    @model_validator(mode="after")
    def validate_param_matches_plugin(self) -> "PluginConfig":
        populated = [name for name in PARAM_FIELDS.values() if getattr(self, name) is not None]
        expected = PARAM_FIELDS.get(self.plugin_id)
        if expected is None:
            if populated:
                raise ValueError(f"plugin '{self.id}' has unknown pluginId '{self.plugin_id}' but sets {populated}.")
            return self
        if expected not in populated:
            raise ValueError(f"plugin '{self.id}' ({self.plugin_id}) requires {expected}.")
        extra = [name for name in populated if name != expected]
        if extra:
            raise ValueError(f"plugin '{self.id}' ({self.plugin_id}) must not set {extra}.")
        return self

    @property
    def param(self) -> Any:
        """The parameter object matching ``plugin_id``."""
        name = PARAM_FIELDS.get(self.plugin_id)
        return getattr(self, name) if name else None


class HandlerConfig(BaseModel):
    """Prompt template, response template and plugins of an agent."""
    prompts: list[PromptNode] = Field(default_factory=list)
    response: list[ResponseNode] = Field(default_factory=list)
    plugins: list[PluginConfig] = Field(default_factory=list)


class AgentDefinition(BaseModel):
    """Read-only description of an agent; input to every round."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str = ""
    description: str = ""
    handler_id: str = "basicPromptConcatHandler"
    ai_api_config: AIApiConfig = Field(default_factory=AIApiConfig)
    handler_config: HandlerConfig = Field(default_factory=HandlerConfig)

    @field_validator("id")
    @classmethod
    def validate_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("agent definition id must be non-empty.")
        return value


class FailoverPolicyConfig(BaseModel):
    """Retry/backoff policy for collaborator failover."""

    max_attempts: int = Field(default=2, ge=1, le=8)
    base_backoff_ms: int = Field(default=350, ge=0, le=60_000)
    max_backoff_ms: int = Field(default=5000, ge=1, le=120_000)


class FailoverConfig(BaseModel):
    """Failover settings with per-provider overrides."""

    default: FailoverPolicyConfig = Field(default_factory=FailoverPolicyConfig)
    provider_overrides: dict[str, FailoverPolicyConfig] = Field(default_factory=dict)


class Settings(BaseSettings):
    """Process settings for wikiagent."""

    model_config = SettingsConfigDict(env_prefix="WIKIAGENT_", env_nested_delimiter="__")

    max_self_rounds: int = Field(default=3, ge=0)
    log_level: str = "INFO"
    default_provider: str = "openai"
    default_model: str = "gpt-4o-mini"
    api_key: str = ""
    api_base: str | None = None
    request_timeout_seconds: int = Field(default=120, ge=1)
    tool_result_duration: int = Field(default=1, ge=0)
    mcp_timeout_seconds: float = Field(default=10, gt=0)
    failover: FailoverConfig = Field(default_factory=FailoverConfig)

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        if isinstance(value, str) and value.strip():
            return value.strip().upper()
        return "INFO"
