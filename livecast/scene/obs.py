import asyncio
from typing import Optional

from loguru import logger
from obsws_python.error import OBSSDKRequestError

from scene.base import SceneControlError, SceneController


class OBSSceneController(SceneController):
    """Controls OBS scenes over obs-websocket (v5) with obsws-python.

    obsws-python is blocking, so every request runs in the default executor.
    The connection is opened lazily. A transport failure closes both clients
    and the next call reconnects; a request OBS rejects (unknown scene name,
    for example) leaves the connection as it is.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 4455,
        password: str = "",
        main_scene: str = "",
        return_to_main_on_media_end: bool = True,
        timeout: float = 5.0,
    ):
        self.host = host
        self.port = port
        self.password = password
        self.main_scene = main_scene
        self.return_to_main_on_media_end = return_to_main_on_media_end
        self.timeout = timeout
        self.previous_scene: Optional[str] = None
        self._client = None
        self._events = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    def _open_clients(self):
        """Open the request client and, if needed, the event client."""
        import obsws_python as obs

        kwargs = {"host": self.host, "port": self.port, "timeout": self.timeout}
        if self.password:
            kwargs["password"] = self.password
        client = obs.ReqClient(**kwargs)

        events = None
        if self.return_to_main_on_media_end:
            events = obs.EventClient(**kwargs)
            events.callback.register(self.on_media_input_playback_ended)
        return client, events

    def _close_clients(self) -> None:
        for client in (self._events, self._client):
            if client is not None:
                try:
                    client.disconnect()
                except Exception as e:
                    logger.debug("Error disconnecting from OBS: {}", e)
        self._client = None
        self._events = None

    def _connect_sync(self) -> None:
        self._close_clients()
        self._client, self._events = self._open_clients()

        current = self._client.get_current_program_scene().current_program_scene_name
        logger.info("[SCENE] Connected to OBS. Current scene: {}", current)
        if not self.main_scene:
            self.main_scene = current

    async def connect(self) -> bool:
        logger.info("[SCENE] Connecting to OBS at ws://{}:{}...", self.host, self.port)
        self._loop = asyncio.get_running_loop()
        try:
            await self._loop.run_in_executor(None, self._connect_sync)
            return True
        except Exception as e:
            logger.error("[SCENE] OBS connection error: {}", e)
            self._close_clients()
            return False

    async def _call(self, fn, *args):
        if not self.is_connected and not await self.connect():
            raise SceneControlError("OBS not connected")
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, fn, *args)
        except OBSSDKRequestError as e:
            raise SceneControlError(str(e)) from e
        except Exception as e:
            self._close_clients()  # Reconnect on next call
            raise SceneControlError(str(e)) from e

    async def switch_scene(self, name: str, save_previous: bool = True) -> bool:
        try:
            if save_previous:
                response = await self._call(lambda: self._client.get_current_program_scene())
                self.previous_scene = response.current_program_scene_name
            await self._call(lambda: self._client.set_current_program_scene(name))
        except SceneControlError as e:
            logger.error("[SCENE] Failed to switch to '{}': {}", name, e)
            return False

        logger.info("[SCENE] Switched to scene: {}", name)
        return True

    async def return_to_main_scene(self) -> bool:
        if not self.main_scene:
            return False
        return await self.switch_scene(self.main_scene, save_previous=False)

    async def list_scenes(self) -> list[str]:
        try:
            response = await self._call(lambda: self._client.get_scene_list())
        except SceneControlError as e:
            logger.error("[SCENE] Failed to list scenes: {}", e)
            return []
        return [scene["sceneName"] for scene in response.scenes]

    async def get_current_scene(self) -> Optional[str]:
        try:
            response = await self._call(lambda: self._client.get_current_program_scene())
        except SceneControlError as e:
            logger.error("[SCENE] Failed to get current scene: {}", e)
            return None
        return response.current_program_scene_name

    def on_media_input_playback_ended(self, data) -> None:
        """obsws-python event callback; runs on the client's own thread."""
        logger.info("[SCENE] Media ended: {}", getattr(data, "input_name", "?"))
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._schedule_return)

    def _schedule_return(self) -> None:
        async def _return_later():
            await asyncio.sleep(0.5)
            await self.return_to_main_scene()

        asyncio.ensure_future(_return_later())

    async def disconnect(self) -> None:
        self._close_clients()
        logger.info("[SCENE] Disconnected from OBS")
