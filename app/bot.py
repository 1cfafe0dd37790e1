import os
import re
import sys
import enum
import logging
import asyncio
import subprocess
from datetime import datetime, timezone
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterator,
    List,
    NamedTuple,
    Optional,
    Protocol,
    Set,
    Tuple,
    TypedDict,
)

import requests
import docker
from docker.errors import DockerException
import discord
from discord.ext import commands
from dotenv import load_dotenv


# ------------------------------
# Type definitions
# ------------------------------
class ServerConfig(TypedDict):
    region: str
    resource: str
    address: str


TimerCallback = Callable[[], Awaitable[None]]

# Warning fires 20 minutes before the one hour shutdown.
WARNING_DELAY: float = 2400.0
SHUTDOWN_DELAY: float = 3600.0


# ------------------------------
# Logging configuration
# ------------------------------
logging.basicConfig(
    level=logging.INFO,
    format='[%(asctime)s] [%(levelname)s] %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S',
)
logger: logging.Logger = logging.getLogger(__name__)
if os.getenv("DEBUG", "0") == "1":
    logger.setLevel(logging.DEBUG)
    logger.debug("Debug logging enabled")


# ------------------------------
# Errors
# ------------------------------
class ServerBotWarning(Exception):
    """
    Expected, user-facing failure. The user has already been told what went
    wrong; callers only need to log it.
    """


class UnknownRegionError(ServerBotWarning):
    def __init__(self, region: str) -> None:
        super().__init__(f"Server does not exist: {region!r}")
        self.region = region


class AlreadyRunningError(ServerBotWarning):
    def __init__(self, region: str) -> None:
        super().__init__(f"Server already started: {region}")
        self.region = region


class NotRunningError(ServerBotWarning):
    def __init__(self, region: str) -> None:
        super().__init__(f"Server not started: {region}")
        self.region = region


class ProvisioningError(Exception):
    """Starting a server failed remotely. Needs an admin's attention."""

    def __init__(self, region: str) -> None:
        super().__init__(f"Error starting server: {region}")
        self.region = region


class ProvisioningFailure(Exception):
    """Raised by provisioner backends when a start/stop call fails."""


# ------------------------------
# Configuration
# ------------------------------
class AppConfig:
    """
    Handles environment loading, server parsing, and presentation settings.
    """

    def __init__(self, config_dir: str = "/config") -> None:
        self.config_dir: str = config_dir

        # Load .env
        dotenv_path: str = os.path.join(self.config_dir, ".env")
        logger.debug("Loading environment variables from %s", dotenv_path)
        load_dotenv(dotenv_path)

        # Required env vars
        self.token: str = self._load_required("DISCORD_TOKEN")

        # Servers
        self.servers: List[ServerConfig] = self._load_servers()

        # Provisioner
        self.provisioner: str = os.getenv("PROVISIONER", "azure").strip().lower()
        if self.provisioner not in ("azure", "docker"):
            logger.critical(
                "PROVISIONER must be 'azure' or 'docker', got '%s'. Exiting.",
                self.provisioner,
            )
            sys.exit(1)
        self.azure_resource_group: str = os.getenv("AZURE_RESOURCE_GROUP", "")
        if self.provisioner == "azure" and not self.azure_resource_group:
            logger.critical(
                "AZURE_RESOURCE_GROUP is required when PROVISIONER=azure. Exiting."
            )
            sys.exit(1)
        self.azure_cli_timeout: float = self._parse_float(
            "AZURE_CLI_TIMEOUT", os.getenv("AZURE_CLI_TIMEOUT", "180"), 180.0
        )

        # Optional settings
        self.command_prefix: str = os.getenv("COMMAND_PREFIX", "!")
        self.embed_title: str = os.getenv(
            "EMBED_TITLE", "Overload Azure Server Status"
        )
        self.embed_color_raw: str = os.getenv("EMBED_COLOR", "0x3498DB")

        logger.debug("PROVISIONER: %s", self.provisioner)
        logger.debug("AZURE_RESOURCE_GROUP: %s", self.azure_resource_group)
        logger.debug("COMMAND_PREFIX: %s", self.command_prefix)
        logger.debug("EMBED_TITLE: %s", self.embed_title)
        logger.debug("EMBED_COLOR: %s", self.embed_color_raw)

        self.embed_color: int = self._parse_embed_color(self.embed_color_raw)

    def _load_required(self, key: str) -> str:
        value = os.getenv(key)
        if not value:
            logger.critical("%s is not set. Exiting.", key)
            sys.exit(1)
        return value

    def _load_servers(self) -> List[ServerConfig]:
        server_pattern: re.Pattern[str] = re.compile(r"^SERVER_(\d+)$")
        server_env_entries: List[Tuple[str, str]] = [
            (env_name, env_value)
            for env_name, env_value in os.environ.items()
            if server_pattern.match(env_name)
        ]
        logger.debug(
            "Detected server environment variables: %s",
            [env_name for env_name, _ in server_env_entries],
        )

        if not server_env_entries:
            logger.critical(
                "No servers configured. Define environment variables like "
                "SERVER_1, SERVER_2, etc. Exiting."
            )
            sys.exit(1)

        server_env_entries.sort(
            key=lambda entry: int(
                server_pattern.match(entry[0]).group(1)  # type: ignore[union-attr]
            )
        )

        servers: List[ServerConfig] = []
        seen_regions: Set[str] = set()
        for env_var_name, env_var_value in server_env_entries:
            # The address keeps any further colons, e.g. "1.2.3.4:7003".
            server_parts: List[str] = env_var_value.split(":", 2)
            if len(server_parts) < 2 or not server_parts[0].strip() or not server_parts[1].strip():
                logger.critical(
                    "Server entry '%s' must have at least region and resource. Exiting.",
                    env_var_name,
                )
                sys.exit(1)

            region: str = server_parts[0].strip().lower()
            if region in seen_regions:
                logger.critical(
                    "Server entry '%s' duplicates region '%s'. Exiting.",
                    env_var_name,
                    region,
                )
                sys.exit(1)
            seen_regions.add(region)

            server_config: ServerConfig = {
                "region": region,
                "resource": server_parts[1].strip(),
                "address": server_parts[2].strip() if len(server_parts) > 2 else "",
            }
            servers.append(server_config)
            logger.debug("Parsed server '%s': %s", env_var_name, server_config)

        logger.info("Total servers configured: %d", len(servers))
        return servers

    def _parse_float(self, key: str, raw: str, default: float) -> float:
        try:
            return float(raw)
        except ValueError:
            logger.warning("Invalid %s '%s', defaulting to %s", key, raw, default)
            return default

    def _parse_embed_color(self, raw: str) -> int:
        try:
            return int(raw, 16)
        except ValueError:
            logger.warning(
                "Invalid EMBED_COLOR '%s', defaulting to 0x3498DB",
                raw,
            )
            return 0x3498DB


# ------------------------------
# External IP service
# ------------------------------
UNKNOWN_IP: str = "N/A"


class ExternalIPService:
    def __init__(self) -> None:
        self.ip: str = UNKNOWN_IP

    def update(self) -> str:
        try:
            response = requests.get("https://icanhazip.com", timeout=5)
            if response.status_code == 200:
                self.ip = response.text.strip()
                logger.info("External IP updated: %s", self.ip)
        except requests.RequestException as ip_error:
            logger.warning("Failed to fetch external IP: %s", ip_error)
        return self.ip

    def resolve_addresses(self, servers: List[ServerConfig]) -> List[ServerConfig]:
        """
        Fill in the host's public IP for servers configured without an address.
        Looked up at most once, at startup.
        """
        if all(server["address"] for server in servers):
            return list(servers)

        external_ip: str = self.update()
        resolved: List[ServerConfig] = []
        for server in servers:
            if server["address"]:
                resolved.append(server)
            elif external_ip == UNKNOWN_IP:
                logger.warning(
                    "Server '%s' has no address and the external IP lookup "
                    "failed; users will be shown '%s'. Set an address in its "
                    "SERVER_ entry.",
                    server["region"],
                    UNKNOWN_IP,
                )
                resolved.append({**server, "address": UNKNOWN_IP})
            else:
                logger.debug(
                    "Using external IP %s for server '%s'",
                    external_ip,
                    server["region"],
                )
                resolved.append({**server, "address": external_ip})
        return resolved


# ------------------------------
# Server registry
# ------------------------------
class ServerState:
    def __init__(self, config: ServerConfig) -> None:
        self.config: ServerConfig = config
        self.running: bool = False
        self.warning_timer: Optional[Any] = None
        self.shutdown_timer: Optional[Any] = None
        # Bumped whenever the timer pair changes; stale callbacks do nothing.
        self.epoch: int = 0
        self.lock: asyncio.Lock = asyncio.Lock()

    @property
    def region(self) -> str:
        return self.config["region"]

    @property
    def address(self) -> str:
        return self.config["address"]


class ServerRegistry:
    """
    The fixed set of regions, created once at startup. Lookups are
    case-insensitive.
    """

    def __init__(self, servers: List[ServerConfig]) -> None:
        self._states: Dict[str, ServerState] = {}
        for server in servers:
            region: str = server["region"].lower()
            if region in self._states:
                raise ValueError(f"Duplicate region: {region}")
            self._states[region] = ServerState({**server, "region": region})

    def list_regions(self) -> List[str]:
        return sorted(self._states)

    def get(self, region: str) -> ServerState:
        try:
            return self._states[region.lower()]
        except KeyError:
            raise UnknownRegionError(region) from None

    def __iter__(self) -> Iterator[ServerState]:
        return (self._states[region] for region in self.list_regions())

    def __len__(self) -> int:
        return len(self._states)


# ------------------------------
# Scheduler
# ------------------------------
class Scheduler(Protocol):
    def schedule(self, delay: float, callback: TimerCallback) -> Any:
        ...

    def cancel(self, handle: Any) -> None:
        ...


class AsyncioScheduler:
    """Runs each callback in its own task after sleeping for the delay."""

    def __init__(self) -> None:
        self._tasks: Set["asyncio.Task[None]"] = set()

    def schedule(self, delay: float, callback: TimerCallback) -> "asyncio.Task[None]":
        async def _fire() -> None:
            await asyncio.sleep(delay)
            try:
                await callback()
            except Exception:
                logger.exception("Scheduled callback failed")

        task: asyncio.Task[None] = asyncio.create_task(_fire())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def cancel(self, handle: "asyncio.Task[None]") -> None:
        handle.cancel()

    @property
    def pending(self) -> int:
        return sum(1 for task in self._tasks if not task.done())


# ------------------------------
# Provisioners
# ------------------------------
class Provisioner(Protocol):
    async def start(self, server: ServerConfig) -> None:
        ...

    async def stop(self, server: ServerConfig) -> None:
        ...


class AzureProvisioner:
    """Starts and deallocates Azure VMs through the az CLI."""

    def __init__(self, resource_group: str, timeout: float = 180.0) -> None:
        self.resource_group = resource_group
        self.timeout = timeout

    def _run_az(self, action: str, server: ServerConfig) -> None:
        vm_name: str = server["resource"]
        cmd: List[str] = [
            "az",
            "vm",
            action,
            "--name",
            vm_name,
            "--resource-group",
            self.resource_group,
        ]
        logger.info("Running az vm %s for '%s'", action, vm_name)
        try:
            subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=True,
            )
        except subprocess.CalledProcessError as az_error:
            raise ProvisioningFailure(
                f"az vm {action} failed for {vm_name}: {(az_error.stderr or '').strip()}"
            ) from az_error
        except subprocess.TimeoutExpired as az_error:
            raise ProvisioningFailure(
                f"az vm {action} timed out for {vm_name}"
            ) from az_error
        except FileNotFoundError as az_error:
            raise ProvisioningFailure("Azure CLI (az) is not installed") from az_error

    async def start(self, server: ServerConfig) -> None:
        await asyncio.to_thread(self._run_az, "start", server)

    async def stop(self, server: ServerConfig) -> None:
        await asyncio.to_thread(self._run_az, "deallocate", server)


class DockerProvisioner:
    """Starts and stops game server containers on the local Docker host."""

    def __init__(self, docker_client: docker.DockerClient) -> None:
        self.client = docker_client

    def _start_sync(self, container_name: str) -> None:
        try:
            container_obj: docker.models.containers.Container = (
                self.client.containers.get(container_name)
            )
            container_obj.start()
        except DockerException as docker_error:
            raise ProvisioningFailure(
                f"Failed to start container {container_name}: {docker_error}"
            ) from docker_error

    def _stop_sync(self, container_name: str) -> None:
        try:
            container_obj: docker.models.containers.Container = (
                self.client.containers.get(container_name)
            )
            container_obj.stop()
        except DockerException as docker_error:
            raise ProvisioningFailure(
                f"Failed to stop container {container_name}: {docker_error}"
            ) from docker_error

    async def start(self, server: ServerConfig) -> None:
        await asyncio.to_thread(self._start_sync, server["resource"])

    async def stop(self, server: ServerConfig) -> None:
        await asyncio.to_thread(self._stop_sync, server["resource"])


def build_provisioner(config: AppConfig) -> Provisioner:
    if config.provisioner == "docker":
        try:
            client: docker.DockerClient = docker.from_env()
            logger.info("Docker client initialized successfully")
        except DockerException as docker_error:
            logger.critical("Failed to connect to Docker: %s. Exiting.", docker_error)
            sys.exit(1)
        return DockerProvisioner(client)
    return AzureProvisioner(
        resource_group=config.azure_resource_group,
        timeout=config.azure_cli_timeout,
    )


# ------------------------------
# Messaging
# ------------------------------
class Messenger(Protocol):
    async def send_text(self, text: str, channel: Any) -> None:
        ...

    async def send_embed(
        self, title: str, fields: List[Tuple[str, str]], channel: Any
    ) -> None:
        ...


class DiscordMessenger:
    def __init__(self, embed_color: int) -> None:
        self.embed_color = embed_color

    async def send_text(self, text: str, channel: discord.abc.Messageable) -> None:
        await channel.send(text)

    async def send_embed(
        self,
        title: str,
        fields: List[Tuple[str, str]],
        channel: discord.abc.Messageable,
    ) -> None:
        embed: discord.Embed = discord.Embed(
            title=title,
            color=self.embed_color,
            timestamp=datetime.now(timezone.utc),
        )
        for field_name, field_value in fields:
            embed.add_field(name=field_name, value=field_value, inline=False)
        await channel.send(embed=embed)


# ------------------------------
# Lifecycle manager
# ------------------------------
class StatusReport(NamedTuple):
    offline: List[str]
    online: List[Tuple[str, str]]


class LifecycleManager:
    """
    Moves each region between stopped and running.

    A running region always has a warning timer and a shutdown timer armed.
    Starting or extending a region (re)arms both; the shutdown timer stops the
    server. All transitions for one region hold that region's lock, so
    concurrent commands for the same region run one after the other.
    """

    def __init__(
        self,
        registry: ServerRegistry,
        provisioner: Provisioner,
        messenger: Messenger,
        scheduler: Scheduler,
        command_prefix: str = "!",
        warning_delay: float = WARNING_DELAY,
        shutdown_delay: float = SHUTDOWN_DELAY,
    ) -> None:
        if warning_delay >= shutdown_delay:
            raise ValueError("warning_delay must be shorter than shutdown_delay")
        self.registry = registry
        self.provisioner = provisioner
        self.messenger = messenger
        self.scheduler = scheduler
        self.prefix = command_prefix
        self.warning_delay = warning_delay
        self.shutdown_delay = shutdown_delay
        self._stop_tasks: Set["asyncio.Task[None]"] = set()

    def report_status(self) -> StatusReport:
        offline: List[str] = []
        online: List[Tuple[str, str]] = []
        for state in self.registry:
            if state.running:
                online.append((state.region, state.address))
            else:
                offline.append(state.region)
        return StatusReport(offline=offline, online=online)

    async def _lookup(self, region: str, requester: str, channel: Any) -> ServerState:
        try:
            return self.registry.get(region)
        except UnknownRegionError:
            await self.messenger.send_text(
                f"Sorry, {requester}, but this is not a valid server.  "
                f"Use the `{self.prefix}servers` command to see the list of servers.",
                channel,
            )
            raise

    async def request_start(self, region: str, requester: str, channel: Any) -> None:
        state: ServerState = await self._lookup(region, requester, channel)

        async with state.lock:
            if state.running:
                await self.messenger.send_text(
                    f"Sorry, {requester}, but this server is already running.  "
                    f"Did you mean to `{self.prefix}extend {state.region}` instead?",
                    channel,
                )
                raise AlreadyRunningError(state.region)

            try:
                await self.provisioner.start(state.config)
            except Exception as start_error:
                await self.messenger.send_text(
                    f"Sorry, {requester}, but there was an error starting the server.  "
                    "An admin has been notified.",
                    channel,
                )
                raise ProvisioningError(state.region) from start_error

            state.running = True
            logger.info("Server '%s' started by %s", state.region, requester)
            try:
                await self.messenger.send_text(
                    f"{requester}, the {state.region} server has been started at "
                    f"**{state.address}** and should be available in a couple of minutes.  "
                    "The server will automatically shut down in one hour unless you issue "
                    f"the `{self.prefix}extend {state.region}` command.",
                    channel,
                )
            finally:
                self._arm_timers(state, channel)

    async def request_extend(self, region: str, requester: str, channel: Any) -> None:
        state: ServerState = await self._lookup(region, requester, channel)

        async with state.lock:
            if not state.running:
                await self.messenger.send_text(
                    f"Sorry, {requester}, but this server is not running.  "
                    f"Did you mean to `{self.prefix}start {state.region}` instead?",
                    channel,
                )
                raise NotRunningError(state.region)

            self._arm_timers(state, channel)
            logger.info("Server '%s' extended by %s", state.region, requester)
            await self.messenger.send_text(
                f"{requester}, the {state.region} server has been extended.  "
                "The server will automatically shut down in one hour unless you issue "
                f"the `{self.prefix}extend {state.region}` command.",
                channel,
            )

    def shutdown_all(self) -> None:
        """
        Cancel every armed timer and mark the regions stopped. Remote servers
        are left as they are.
        """
        for state in self.registry:
            if state.running:
                self._cancel_timers(state)
                state.running = False
                logger.info("Cancelled timers for '%s'", state.region)

    def _cancel_timers(self, state: ServerState) -> None:
        for handle in (state.warning_timer, state.shutdown_timer):
            if handle is not None:
                self.scheduler.cancel(handle)
        state.warning_timer = None
        state.shutdown_timer = None
        state.epoch += 1

    def _arm_timers(self, state: ServerState, channel: Any) -> None:
        self._cancel_timers(state)
        epoch: int = state.epoch

        async def _warn() -> None:
            await self._on_warning(state, epoch, channel)

        async def _shutdown() -> None:
            await self._on_shutdown(state, epoch, channel)

        state.warning_timer = self.scheduler.schedule(self.warning_delay, _warn)
        state.shutdown_timer = self.scheduler.schedule(self.shutdown_delay, _shutdown)
        logger.debug(
            "Armed timers for '%s' (warning in %.0fs, shutdown in %.0fs)",
            state.region,
            self.warning_delay,
            self.shutdown_delay,
        )

    async def _on_warning(self, state: ServerState, epoch: int, channel: Any) -> None:
        async with state.lock:
            if state.epoch != epoch:
                return
            minutes_left: int = round((self.shutdown_delay - self.warning_delay) / 60)
            await self.messenger.send_text(
                f"The {state.region} server will automatically shut down in "
                f"{minutes_left} minutes.  Issue the `{self.prefix}extend {state.region}` "
                "command to reset the shutdown timer to an hour.",
                channel,
            )

    async def _on_shutdown(self, state: ServerState, epoch: int, channel: Any) -> None:
        async with state.lock:
            if state.epoch != epoch:
                return
            # The shutdown timer is the task running this callback, so it is
            # dropped rather than cancelled.
            if state.warning_timer is not None:
                self.scheduler.cancel(state.warning_timer)
            state.warning_timer = None
            state.shutdown_timer = None
            state.epoch += 1
            state.running = False

            self._stop_in_background(state)
            logger.info("Server '%s' shut down", state.region)
            await self.messenger.send_text(
                f"The {state.region} server is being shutdown.  Thanks for playing!",
                channel,
            )

    def _stop_in_background(self, state: ServerState) -> None:
        async def _stop() -> None:
            try:
                await self.provisioner.stop(state.config)
            except Exception:
                # Not retried and not reported to users; the region is
                # treated as stopped either way.
                logger.exception("Failed to stop server '%s'", state.region)

        task: asyncio.Task[None] = asyncio.create_task(_stop())
        self._stop_tasks.add(task)
        task.add_done_callback(self._stop_tasks.discard)

    async def wait_for_stops(self) -> None:
        """Wait for any stop calls still in flight from auto-shutdowns."""
        if self._stop_tasks:
            await asyncio.gather(*self._stop_tasks)


# ------------------------------
# Commands
# ------------------------------
class CommandResult(enum.Enum):
    HANDLED = "handled"
    NOT_APPLICABLE = "not_applicable"

    def __bool__(self) -> bool:
        return self is CommandResult.HANDLED


class ServerCommands:
    """
    Maps chat commands onto the lifecycle manager. Returns NOT_APPLICABLE for
    malformed commands; real failures are raised.
    """

    def __init__(
        self,
        manager: LifecycleManager,
        messenger: Messenger,
        embed_title: str,
    ) -> None:
        self.manager = manager
        self.messenger = messenger
        self.embed_title = embed_title

    async def servers(self, user: Any, channel: Any, message: str = "") -> CommandResult:
        if message:
            return CommandResult.NOT_APPLICABLE

        prefix: str = self.manager.prefix
        report: StatusReport = self.manager.report_status()
        fields: List[Tuple[str, str]] = []
        if report.offline:
            fields.append(
                (
                    f"Offline Servers - Use `{prefix}start <region>` to start a server.",
                    "\n".join(report.offline),
                )
            )
        if report.online:
            fields.append(
                (
                    f"Online Servers - Use `{prefix}extend <region>` to extend "
                    "the server's shutdown time.",
                    "\n".join(f"{region} - {address}" for region, address in report.online),
                )
            )

        await self.messenger.send_embed(self.embed_title, fields, channel)
        return CommandResult.HANDLED

    async def start(self, user: Any, channel: Any, message: str = "") -> CommandResult:
        region: str = message.strip()
        if not region:
            return CommandResult.NOT_APPLICABLE
        await self.manager.request_start(region, user.mention, channel)
        return CommandResult.HANDLED

    async def extend(self, user: Any, channel: Any, message: str = "") -> CommandResult:
        region: str = message.strip()
        if not region:
            return CommandResult.NOT_APPLICABLE
        await self.manager.request_extend(region, user.mention, channel)
        return CommandResult.HANDLED


class ServerCog(commands.Cog, name="Servers"):
    def __init__(self, server_commands: ServerCommands) -> None:
        self.server_commands = server_commands

    @commands.command(name="servers")
    async def servers_command(self, ctx: commands.Context, *, message: str = "") -> None:
        if not await self.server_commands.servers(ctx.author, ctx.channel, message):
            await ctx.send(f"Usage: `{ctx.clean_prefix}servers`")

    @commands.command(name="start")
    async def start_command(self, ctx: commands.Context, *, region: str = "") -> None:
        if not await self.server_commands.start(ctx.author, ctx.channel, region):
            await ctx.send(f"Usage: `{ctx.clean_prefix}start <region>`")

    @commands.command(name="extend")
    async def extend_command(self, ctx: commands.Context, *, region: str = "") -> None:
        if not await self.server_commands.extend(ctx.author, ctx.channel, region):
            await ctx.send(f"Usage: `{ctx.clean_prefix}extend <region>`")


# ------------------------------
# Discord Bot
# ------------------------------
class RegionServerBot(commands.Bot):
    def __init__(
        self,
        config: AppConfig,
        manager: LifecycleManager,
        server_commands: ServerCommands,
    ) -> None:
        intents: discord.Intents = discord.Intents.default()
        intents.message_content = True
        super().__init__(command_prefix=config.command_prefix, intents=intents)

        self.config = config
        self.manager = manager
        self.server_commands = server_commands

    async def setup_hook(self) -> None:
        await self.add_cog(ServerCog(self.server_commands))

    async def on_ready(self) -> None:  # type: ignore[override]
        assert self.user is not None
        logger.info("Logged in as %s", self.user)
        logger.info(
            "Managing %d servers: %s",
            len(self.manager.registry),
            ", ".join(self.manager.registry.list_regions()),
        )

    async def on_command_error(  # type: ignore[override]
        self,
        ctx: commands.Context,
        error: commands.CommandError,
    ) -> None:
        if isinstance(error, commands.CommandNotFound):
            logger.debug("Ignoring unknown command: %s", ctx.message.content)
            return

        original: BaseException = getattr(error, "original", error)
        if isinstance(original, ServerBotWarning):
            logger.warning("Command '%s' by %s: %s", ctx.command, ctx.author, original)
        elif isinstance(original, ProvisioningError):
            logger.error(
                "Command '%s' by %s failed: %s",
                ctx.command,
                ctx.author,
                original,
                exc_info=original,
            )
        else:
            logger.error(
                "Unexpected error in command '%s'",
                ctx.command,
                exc_info=original,
            )

    async def close(self) -> None:
        self.manager.shutdown_all()
        await self.manager.wait_for_stops()
        await super().close()


# ------------------------------
# Main entrypoint
# ------------------------------
def main() -> None:
    config = AppConfig(os.getenv("CONFIG_DIR", "/config"))
    external_ip_service = ExternalIPService()
    registry = ServerRegistry(external_ip_service.resolve_addresses(config.servers))
    messenger = DiscordMessenger(config.embed_color)
    manager = LifecycleManager(
        registry=registry,
        provisioner=build_provisioner(config),
        messenger=messenger,
        scheduler=AsyncioScheduler(),
        command_prefix=config.command_prefix,
    )
    server_commands = ServerCommands(
        manager=manager,
        messenger=messenger,
        embed_title=config.embed_title,
    )

    bot = RegionServerBot(
        config=config,
        manager=manager,
        server_commands=server_commands,
    )
    bot.run(config.token)


if __name__ == "__main__":
    main()
