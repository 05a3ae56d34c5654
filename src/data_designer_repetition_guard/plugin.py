from data_designer.plugins.plugin import Plugin, PluginType

repetition_guard_plugin = Plugin(
    config_qualified_name="data_designer_repetition_guard.config.RepetitionGuardColumnConfig",
    impl_qualified_name="data_designer_repetition_guard.generator.RepetitionGuardColumnGenerator",
    plugin_type=PluginType.COLUMN_GENERATOR,
)
