import threading

from wikiagent.config.schema import PLUGIN_KINDS, AutoReplyParam, DynamicPositionParam, PluginConfig
from wikiagent.plugins import registry
from wikiagent.plugins.registry import (
    PluginKind,
    create_hooks_with_plugins,
    get_registered_plugins,
    initialize_plugin_system,
    register_plugin,
)


def test_all_builtin_kinds_are_registered() -> None:
    plugins = get_registered_plugins()

    assert set(plugins) == set(PluginKind)
    assert {kind.value for kind in PluginKind} == set(PLUGIN_KINDS)
    assert PluginKind.parse("wikiSearch") is PluginKind.WIKI_SEARCH
    assert PluginKind.parse("nope") is None


def test_initialization_is_safe_from_many_threads() -> None:
    threads = [threading.Thread(target=initialize_plugin_system) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(get_registered_plugins()) == len(PluginKind)


def test_each_kind_registers_once_in_first_appearance_order() -> None:
    configs = [
        PluginConfig(id="a1", plugin_id="autoReply", auto_reply_param=AutoReplyParam(text="more")),
        PluginConfig(
            id="d1",
            plugin_id="dynamicPosition",
            content="x",
            dynamic_position_param=DynamicPositionParam(target_id="system"),
        ),
        PluginConfig(id="a2", plugin_id="autoReply", auto_reply_param=AutoReplyParam(text="again")),
    ]

    hooks = create_hooks_with_plugins(configs)

    assert hooks.post_process.taps == ["autoReply"]
    assert hooks.process_prompts.taps == ["dynamicPosition"]
    assert hooks.user_message_received.taps == ["messageManagement"]
    assert hooks.tool_executed.taps == ["messageManagement"]


def test_register_plugin_replaces_registrar(monkeypatch) -> None:
    initialize_plugin_system()
    monkeypatch.setitem(registry._PLUGINS, PluginKind.DYNAMIC_POSITION, registry._PLUGINS[PluginKind.DYNAMIC_POSITION])

    def custom(hooks):
        hooks.process_prompts.tap("custom", lambda ctx: None)

    register_plugin(PluginKind.DYNAMIC_POSITION, custom)
    config = PluginConfig(
        id="d1",
        plugin_id="dynamicPosition",
        content="x",
        dynamic_position_param=DynamicPositionParam(target_id="system"),
    )

    hooks = create_hooks_with_plugins([config])

    assert hooks.process_prompts.taps == ["custom"]
