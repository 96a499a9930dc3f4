import discord
from discord.ext import commands
import logging
import asyncio
from typing import Optional, Tuple
import os
from pathlib import Path
from urllib.parse import urlparse
from urllib.request import url2pathname

from .bank_loader import BankLoader, LoadError, LoadErrorKind
from .config_manager import ConfigManager
from .leaderboard import Leaderboard
from .models import Cue, Phase, ReorderKind
from .session_controller import SessionController

logger = logging.getLogger(__name__)

COLOR_INFO = 0x6699ff
COLOR_OK = 0x00ff00
COLOR_WARN = 0xffaa00
COLOR_ERROR = 0xff0000


def local_image_path(image_url: str) -> Optional[Path]:
    """Filesystem path for a file:// image URL, or None for remote images."""
    parsed = urlparse(image_url)
    if parsed.scheme != "file":
        return None
    return Path(url2pathname(parsed.path))


def build_question_card(controller: SessionController) -> Tuple[discord.Embed, Optional[discord.File]]:
    """
    Render the current question card.

    Remote images are linked from the embed. Local images are uploaded
    alongside it as an attachment the embed points at.

    Returns:
        The embed and the file to attach with it, if any
    """
    state = controller.state
    problem = controller.current_problem()

    if state.phase is not Phase.ACTIVE or problem is None:
        embed = discord.Embed(
            title="Question #—",
            description="Press Start to reveal question.",
            color=COLOR_INFO
        )
        return embed, None

    progress = controller.get_progress()
    embed = discord.Embed(
        title=f"Question #{problem.id}",
        description=problem.question,
        color=COLOR_WARN if state.paused else COLOR_OK
    )
    embed.add_field(name="Round", value=f"{progress['round']} / {progress['total_rounds']}", inline=True)
    embed.add_field(name="Time", value="Paused" if state.paused else f"{state.time_left}s", inline=True)

    attachment = None
    image_url = controller.current_image_url()
    if image_url:
        path = local_image_path(image_url)
        if path is None:
            embed.set_image(url=image_url)
        else:
            try:
                attachment = discord.File(str(path), filename=path.name)
                embed.set_image(url=f"attachment://{path.name}")
            except OSError as e:
                logger.warning(f"Could not attach image {path}: {e}")
                embed.add_field(name="Image", value=f"Missing: {path.name}", inline=False)

    if state.revealed:
        embed.add_field(name="Answer", value=problem.answer_text, inline=False)
    return embed, attachment


def build_status_embed(controller: SessionController) -> discord.Embed:
    progress = controller.get_progress()
    embed = discord.Embed(title="📊 Stage Status", color=COLOR_INFO)
    embed.add_field(
        name="Active Set",
        value=f"{progress['set_name'] or '—'} ({progress['set_size']})",
        inline=False
    )
    embed.add_field(name="Round", value=f"{progress['round']} / {progress['total_rounds']}", inline=True)
    embed.add_field(name="Phase", value=progress['phase'], inline=True)
    embed.add_field(
        name="Timer",
        value="Paused" if progress['paused'] else f"{progress['time_left']}s of {progress['question_time']}s",
        inline=True
    )
    return embed


def build_board_embed(leaderboard: Leaderboard) -> discord.Embed:
    embed = discord.Embed(title="🏆 Leaderboard", color=COLOR_INFO)
    players = leaderboard.display_order()
    if not players:
        embed.description = "Add players to begin. Scores can be adjusted in real time."
        return embed
    embed.description = "\n".join(
        f"`{p.id}` **{p.name}** — {p.score}" for p in players
    )
    return embed


def build_sets_embed(controller: SessionController) -> discord.Embed:
    embed = discord.Embed(title="📚 Problem Sets", color=COLOR_INFO)
    sets = controller.bank.sets
    if not sets:
        embed.description = "No problem sets loaded. Check the manifest and use `/reload`."
        return embed
    active = controller.state.active_set_index
    embed.description = "\n".join(
        f"{'▶' if i == active else '•'} `{i}` {s.name} ({len(s.problems)})"
        for i, s in enumerate(sets)
    )
    return embed


class CueAnnouncer:
    """Posts cue notifications to the stage channel without waiting for them."""

    def __init__(self, controller: SessionController):
        self.controller = controller
        self.channel: Optional[discord.TextChannel] = None
        self._pending = set()

    def on_cue(self, cue: Cue) -> None:
        if self.channel is None:
            return

        if cue is Cue.START:
            embed, attachment = build_question_card(self.controller)
            coro = self.channel.send(embed=embed, file=attachment)
        elif cue is Cue.TICK:
            coro = self.channel.send(f"⏰ {self.controller.state.time_left}…")
        else:
            coro = self.channel.send("⌛ Time's up!")

        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._on_sent)

    def _on_sent(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Failed to announce cue: {error}")


class StageBot(commands.Bot):
    """Discord bot through which the host drives the stage"""

    def __init__(self, config=None):
        intents = discord.Intents.none()
        intents.guilds = True  # Required for slash commands

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,
            intents=intents,
            help_command=None
        )

        self.app_config = config or {}

        self.config_manager: Optional[ConfigManager] = None
        self.controller: Optional[SessionController] = None
        self.leaderboard: Optional[Leaderboard] = None
        self.announcer: Optional[CueAnnouncer] = None
        self.last_load_error: Optional[LoadError] = None

    async def setup_hook(self):
        """Called when the bot is starting up"""
        try:
            logger.info("Setting up stage components...")

            self.config_manager = ConfigManager()
            if self.app_config:
                self.config_manager.apply(self.app_config)

            self.controller = SessionController(
                question_time=self.config_manager.get_question_time(),
                loop=asyncio.get_running_loop()
            )
            self.leaderboard = Leaderboard()
            self.announcer = CueAnnouncer(self.controller)
            self.controller.add_cue_listener(self.announcer.on_cue)

            await self.load_bank()
            await self.setup_commands()

            logger.info("Bot setup completed successfully")

        except Exception as e:
            logger.error(f"Error during bot setup: {e}")
            raise

    async def load_bank(self) -> bool:
        """
        Load the question bank from the configured manifest.

        On failure the previous bank stays in place.
        """
        loader = BankLoader(timeout=self.config_manager.get_fetch_timeout())
        try:
            bank = await loader.load(self.config_manager.get_manifest())
        except LoadError as e:
            logger.error(f"Question bank failed to load: {e}")
            self.last_load_error = e
            return False

        self.controller.load_bank(bank)
        self.last_load_error = None
        return True

    async def setup_commands(self):
        """Register all slash commands"""
        tree = self.tree

        @tree.command(name="help", description="Display available commands")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @tree.command(name="reload", description="Reload the question bank from the manifest")
        async def reload_command(interaction: discord.Interaction):
            await self.handle_reload(interaction)

        @tree.command(name="sets", description="List the loaded problem sets")
        async def sets_command(interaction: discord.Interaction):
            await self.handle_sets(interaction)

        @tree.command(name="use_set", description="Select the active problem set")
        async def use_set_command(interaction: discord.Interaction, index: int):
            await self.handle_use_set(interaction, index)

        @tree.command(name="start", description="Start the round")
        async def start_command(interaction: discord.Interaction):
            await self.handle_start(interaction)

        @tree.command(name="next", description="Next question")
        async def next_command(interaction: discord.Interaction):
            await self.handle_next(interaction)

        @tree.command(name="goto", description="Jump to a question number")
        async def goto_command(interaction: discord.Interaction, number: str):
            await self.handle_goto(interaction, number)

        @tree.command(name="reveal", description="Reveal or hide the answer")
        async def reveal_command(interaction: discord.Interaction):
            await self.handle_reveal(interaction)

        @tree.command(name="pause", description="Pause or resume the timer")
        async def pause_command(interaction: discord.Interaction):
            await self.handle_pause(interaction)

        @tree.command(name="reset_timer", description="Reset the timer to the question time")
        async def reset_timer_command(interaction: discord.Interaction):
            await self.handle_reset_timer(interaction)

        @tree.command(name="home", description="Return to the stage home")
        async def home_command(interaction: discord.Interaction):
            await self.handle_home(interaction)

        @tree.command(name="set_time", description="Set seconds per question (minimum 5)")
        async def set_time_command(interaction: discord.Interaction, seconds: int):
            await self.handle_set_time(interaction, seconds)

        @tree.command(name="set_rounds", description="Set the number of rounds")
        async def set_rounds_command(interaction: discord.Interaction, rounds: int):
            await self.handle_set_rounds(interaction, rounds)

        @tree.command(name="shuffle", description="Shuffle the question order")
        async def shuffle_command(interaction: discord.Interaction):
            await self.handle_reorder(interaction, ReorderKind.SHUFFLE)

        @tree.command(name="in_order", description="Use the question order from the set file")
        async def in_order_command(interaction: discord.Interaction):
            await self.handle_reorder(interaction, ReorderKind.IN_ORDER)

        @tree.command(name="status", description="Show the stage status")
        async def status_command(interaction: discord.Interaction):
            await self.handle_status(interaction)

        @tree.command(name="player_add", description="Add a player to the leaderboard")
        async def player_add_command(interaction: discord.Interaction, name: str):
            await self.handle_player_add(interaction, name)

        @tree.command(name="player_bump", description="Change a player's score")
        async def player_bump_command(interaction: discord.Interaction, player_id: str, delta: int = 1):
            await self.handle_player_bump(interaction, player_id, delta)

        @tree.command(name="player_rename", description="Rename a player")
        async def player_rename_command(interaction: discord.Interaction, player_id: str, name: str):
            await self.handle_player_rename(interaction, player_id, name)

        @tree.command(name="player_remove", description="Remove a player")
        async def player_remove_command(interaction: discord.Interaction, player_id: str):
            await self.handle_player_remove(interaction, player_id)

        @tree.command(name="board", description="Show the leaderboard")
        async def board_command(interaction: discord.Interaction):
            await self.handle_board(interaction)

        logger.info("Slash commands registered successfully")

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        logger.info(f"Bot is ready! Logged in as {self.user}")
        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync slash commands: {e}")

    async def on_error(self, event, *args, **kwargs):
        """Handle general bot errors"""
        logger.error(f"An error occurred in event {event}", exc_info=True)

    async def close(self):
        if self.controller is not None:
            self.controller.close()
        await super().close()

    # Command handlers

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        try:
            embed = discord.Embed(
                title="🎯 Face-Off Stage Commands",
                description="Host controls for the stage",
                color=COLOR_OK
            )
            embed.add_field(
                name="🎮 Round",
                value=(
                    "`/start` `/next` `/goto <n>` `/reveal` `/pause` `/reset_timer` `/home` `/status`"
                ),
                inline=False
            )
            embed.add_field(
                name="📚 Sets",
                value="`/reload` `/sets` `/use_set <index>` `/shuffle` `/in_order` `/set_time <s>` `/set_rounds <n>`",
                inline=False
            )
            embed.add_field(
                name="🏆 Leaderboard",
                value="`/player_add` `/player_bump` `/player_rename` `/player_remove` `/board`",
                inline=False
            )
            embed.add_field(
                name="⚙️ Settings",
                value=f"```\n{self.config_manager.get_settings_summary()}\n```",
                inline=False
            )
            await self.send_response(interaction, embed, ephemeral=True)
        except Exception as e:
            logger.error(f"Error in help command: {e}")
            await self.send_error_response(interaction, "Failed to display help")

    async def handle_reload(self, interaction: discord.Interaction):
        """Handle /reload command"""
        try:
            if await self.load_bank():
                embed = build_sets_embed(self.controller)
                embed.title = "✅ Question Bank Reloaded"
                await self.send_response(interaction, embed)
            else:
                await self.send_error_response(
                    interaction,
                    self.describe_load_error(self.last_load_error),
                    "❌ Load Failed"
                )
        except Exception as e:
            logger.error(f"Error in reload command: {e}")
            await self.send_error_response(interaction, "Failed to reload the question bank")

    async def handle_sets(self, interaction: discord.Interaction):
        try:
            await self.send_response(interaction, build_sets_embed(self.controller), ephemeral=True)
        except Exception as e:
            logger.error(f"Error in sets command: {e}")
            await self.send_error_response(interaction, "Failed to list problem sets")

    async def handle_use_set(self, interaction: discord.Interaction, index: int):
        try:
            if self.controller.change_active_set(index):
                problem_set = self.controller.active_set
                embed = discord.Embed(
                    title="📚 Active Set Changed",
                    description=f"**{problem_set.name}** ({len(problem_set.problems)} problems, shuffled)",
                    color=COLOR_OK
                )
                await self.send_response(interaction, embed)
            else:
                await self.send_info_response(interaction, f"No problem set at index {index}. Use `/sets`.")
        except Exception as e:
            logger.error(f"Error in use_set command: {e}")
            await self.send_error_response(interaction, "Failed to change the active set")

    async def handle_start(self, interaction: discord.Interaction):
        """Handle /start command"""
        try:
            if self.last_load_error is not None and not self.controller.bank.sets:
                await self.send_error_response(
                    interaction,
                    self.describe_load_error(self.last_load_error),
                    "❌ Question Bank Not Loaded"
                )
                return

            self.announcer.channel = interaction.channel
            if self.controller.start():
                await self.send_response(interaction, build_status_embed(self.controller), ephemeral=True)
            else:
                await self.send_info_response(interaction, "The active set has no problems. Use `/sets` to pick another.")
        except Exception as e:
            logger.error(f"Error in start command: {e}")
            await self.send_error_response(interaction, "Failed to start the round")

    async def handle_next(self, interaction: discord.Interaction):
        try:
            self.announcer.channel = interaction.channel
            if not self.controller.next():
                await self.send_info_response(interaction, "No question on display. Use `/start` first.")
            elif self.controller.state.phase is Phase.IDLE:
                embed = discord.Embed(title="🏁 Round Complete", color=COLOR_OK)
                await self.send_response(interaction, embed)
            else:
                await self.send_response(interaction, build_status_embed(self.controller), ephemeral=True)
        except Exception as e:
            logger.error(f"Error in next command: {e}")
            await self.send_error_response(interaction, "Failed to advance")

    async def handle_goto(self, interaction: discord.Interaction, number: str):
        try:
            self.announcer.channel = interaction.channel
            if self.controller.goto(number):
                await self.send_response(interaction, build_status_embed(self.controller), ephemeral=True)
            else:
                await self.send_info_response(
                    interaction,
                    f"Pick a question between 1 and {self.controller.effective_rounds}."
                )
        except Exception as e:
            logger.error(f"Error in goto command: {e}")
            await self.send_error_response(interaction, "Failed to jump to question")

    async def handle_reveal(self, interaction: discord.Interaction):
        try:
            self.controller.toggle_reveal()
            embed, attachment = build_question_card(self.controller)
            await self.send_response(interaction, embed, file=attachment)
        except Exception as e:
            logger.error(f"Error in reveal command: {e}")
            await self.send_error_response(interaction, "Failed to toggle the answer")

    async def handle_pause(self, interaction: discord.Interaction):
        """Handle /pause command"""
        try:
            self.controller.toggle_pause()
            state = self.controller.state
            if state.paused:
                embed = discord.Embed(title="⏸️ Timer Paused", description=f"{state.time_left}s left", color=COLOR_WARN)
            else:
                embed = discord.Embed(title="▶️ Timer Resumed", description=f"{state.time_left}s left", color=COLOR_OK)
            await self.send_response(interaction, embed)
        except Exception as e:
            logger.error(f"Error in pause command: {e}")
            await self.send_error_response(interaction, "Failed to toggle pause")

    async def handle_reset_timer(self, interaction: discord.Interaction):
        try:
            self.controller.reset_timer()
            embed = discord.Embed(
                title="🔄 Timer Reset",
                description=f"{self.controller.state.time_left}s",
                color=COLOR_OK
            )
            await self.send_response(interaction, embed)
        except Exception as e:
            logger.error(f"Error in reset_timer command: {e}")
            await self.send_error_response(interaction, "Failed to reset the timer")

    async def handle_home(self, interaction: discord.Interaction):
        try:
            self.controller.home()
            embed, attachment = build_question_card(self.controller)
            await self.send_response(interaction, embed, file=attachment)
        except Exception as e:
            logger.error(f"Error in home command: {e}")
            await self.send_error_response(interaction, "Failed to return home")

    async def handle_set_time(self, interaction: discord.Interaction, seconds: int):
        try:
            self.controller.change_question_time(seconds)
            embed = discord.Embed(
                title="⏱️ Question Time Updated",
                description=f"{self.controller.state.question_time_seconds} seconds per question",
                color=COLOR_OK
            )
            await self.send_response(interaction, embed)
        except Exception as e:
            logger.error(f"Error in set_time command: {e}")
            await self.send_error_response(interaction, "Failed to set question time")

    async def handle_set_rounds(self, interaction: discord.Interaction, rounds: int):
        try:
            self.controller.change_rounds(rounds)
            state = self.controller.state
            embed = discord.Embed(
                title="🔢 Rounds Updated",
                description=f"{state.total_rounds} rounds ({state.effective_rounds} playable)",
                color=COLOR_OK
            )
            await self.send_response(interaction, embed)
        except Exception as e:
            logger.error(f"Error in set_rounds command: {e}")
            await self.send_error_response(interaction, "Failed to set rounds")

    async def handle_reorder(self, interaction: discord.Interaction, kind: ReorderKind):
        try:
            if self.controller.reorder(kind):
                label = "🔀 Shuffled" if kind is ReorderKind.SHUFFLE else "📋 In Order"
                await self.send_response(interaction, discord.Embed(title=label, color=COLOR_OK))
            else:
                await self.send_warning_response(
                    interaction,
                    "The order can only be changed from the stage home. Use `/home` first."
                )
        except Exception as e:
            logger.error(f"Error in reorder command: {e}")
            await self.send_error_response(interaction, "Failed to change the order")

    async def handle_status(self, interaction: discord.Interaction):
        try:
            await self.send_response(interaction, build_status_embed(self.controller), ephemeral=True)
        except Exception as e:
            logger.error(f"Error in status command: {e}")
            await self.send_error_response(interaction, "Failed to get stage status")

    async def handle_player_add(self, interaction: discord.Interaction, name: str):
        try:
            if self.leaderboard.add(name) is None:
                await self.send_info_response(interaction, "Player name cannot be empty.")
                return
            await self.send_response(interaction, build_board_embed(self.leaderboard))
        except Exception as e:
            logger.error(f"Error in player_add command: {e}")
            await self.send_error_response(interaction, "Failed to add player")

    async def handle_player_bump(self, interaction: discord.Interaction, player_id: str, delta: int = 1):
        try:
            if not self.leaderboard.bump(player_id, delta):
                await self.send_info_response(interaction, f"No player `{player_id}`. Use `/board`.")
                return
            await self.send_response(interaction, build_board_embed(self.leaderboard))
        except Exception as e:
            logger.error(f"Error in player_bump command: {e}")
            await self.send_error_response(interaction, "Failed to change score")

    async def handle_player_rename(self, interaction: discord.Interaction, player_id: str, name: str):
        try:
            if not self.leaderboard.rename(player_id, name):
                await self.send_info_response(interaction, f"No player `{player_id}`. Use `/board`.")
                return
            await self.send_response(interaction, build_board_embed(self.leaderboard))
        except Exception as e:
            logger.error(f"Error in player_rename command: {e}")
            await self.send_error_response(interaction, "Failed to rename player")

    async def handle_player_remove(self, interaction: discord.Interaction, player_id: str):
        try:
            if not self.leaderboard.remove(player_id):
                await self.send_info_response(interaction, f"No player `{player_id}`. Use `/board`.")
                return
            await self.send_response(interaction, build_board_embed(self.leaderboard))
        except Exception as e:
            logger.error(f"Error in player_remove command: {e}")
            await self.send_error_response(interaction, "Failed to remove player")

    async def handle_board(self, interaction: discord.Interaction):
        try:
            await self.send_response(interaction, build_board_embed(self.leaderboard))
        except Exception as e:
            logger.error(f"Error in board command: {e}")
            await self.send_error_response(interaction, "Failed to show the leaderboard")

    # Responses

    @staticmethod
    def describe_load_error(error: Optional[LoadError]) -> str:
        if error is None:
            return "The question bank could not be loaded."
        if error.kind is LoadErrorKind.MANIFEST:
            return "Could not load the question bank manifest. Check the manifest location and `/reload`."
        return f"Could not load problem set `{error.which}`. Ensure all files exist next to the manifest and `/reload`."

    async def send_response(
        self,
        interaction: discord.Interaction,
        embed: discord.Embed,
        ephemeral: bool = False,
        file: Optional[discord.File] = None
    ):
        """Send an embed, following up if the interaction was already answered"""
        kwargs = {'embed': embed, 'ephemeral': ephemeral}
        if file is not None:
            kwargs['file'] = file
        if interaction.response.is_done():
            await interaction.followup.send(**kwargs)
        else:
            await interaction.response.send_message(**kwargs)

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send formatted error response to user"""
        try:
            embed = discord.Embed(title=title, description=message, color=COLOR_ERROR)
            await self.send_response(interaction, embed, ephemeral=True)
        except discord.HTTPException:
            logger.error("Failed to send error response to user")

    async def send_info_response(self, interaction: discord.Interaction, message: str, title: str = "ℹ️ Information"):
        """Send formatted info response to user"""
        try:
            embed = discord.Embed(title=title, description=message, color=COLOR_INFO)
            await self.send_response(interaction, embed, ephemeral=True)
        except discord.HTTPException:
            logger.error("Failed to send info response to user")

    async def send_warning_response(self, interaction: discord.Interaction, message: str, title: str = "⚠️ Warning"):
        """Send formatted warning response to user"""
        try:
            embed = discord.Embed(title=title, description=message, color=COLOR_WARN)
            await self.send_response(interaction, embed, ephemeral=True)
        except discord.HTTPException:
            logger.error("Failed to send warning response to user")


async def run_bot(token=None, config=None):
    """Run the bot with proper error handling"""
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = StageBot(config)

    try:
        logger.info("Starting Face-Off Stage bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
