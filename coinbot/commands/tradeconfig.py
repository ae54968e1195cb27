from discord import Interaction, app_commands

from coinbot.config.runtime import APP_CONFIG_SPECS, get_app_config, set_app_config


def setup_tradeconfig(tree: app_commands.CommandTree) -> None:
    @tree.command(name="tradeconfig", description="Admin: show or change trade settings.")
    @app_commands.default_permissions(administrator=True)
    @app_commands.checks.has_permissions(administrator=True)
    @app_commands.describe(
        name="Setting to change (leave empty to list all).",
        value="New value for the setting.",
    )
    @app_commands.choices(
        name=[app_commands.Choice(name=key, value=key) for key in APP_CONFIG_SPECS]
    )
    async def tradeconfig(
        interaction: Interaction,
        name: str | None = None,
        value: str | None = None,
    ) -> None:
        if name is None:
            lines = [
                f"`{key}` = `{get_app_config(key)}` - {spec.description}"
                for key, spec in APP_CONFIG_SPECS.items()
            ]
            await interaction.response.send_message("\n".join(lines), ephemeral=True)
            return
        if value is None:
            await interaction.response.send_message(
                f"`{name}` = `{get_app_config(name)}`",
                ephemeral=True,
            )
            return
        try:
            normalized = set_app_config(name, APP_CONFIG_SPECS[name].cast(value))
        except (TypeError, ValueError):
            await interaction.response.send_message(
                f"Invalid value for `{name}`: `{value}`",
                ephemeral=True,
            )
            return
        await interaction.response.send_message(
            f"`{name}` set to `{normalized}`. Takes effect after the bot restarts.",
            ephemeral=True,
        )
