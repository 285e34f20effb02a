# imagetransform/workspace.py

import logging
from typing import Optional, Union

from .coordinator import TransformRequestCoordinator
from .errors import InvalidInput, NeedsVipSession
from .model import QualityTier, ServiceKind, TransformRequest
from .states import CoordinatorState, TransformSnapshot

logger = logging.getLogger(__name__)


class TransformWorkspace:
    """
    Page-level state around the coordinator: uploaded image, selection,
    chosen service and the VIP session / modal flag.

    The workspace is also the coordinator's VipSessionProvider, so a session
    granted here is picked up by the next submit.
    """

    def __init__(
        self,
        coordinator: TransformRequestCoordinator,
        default_service: ServiceKind = ServiceKind.MAGIC_MORPH,
    ):
        self.coordinator = coordinator
        self.selected_service = default_service
        self.uploaded_image: Optional[str] = None
        self.selection: Optional[str] = None
        self.vip_session: Optional[str] = None
        self.show_vip_modal = False
        if coordinator.vip_sessions is None:
            coordinator.vip_sessions = self

    def current_token(self) -> Optional[str]:
        return self.vip_session

    def upload_image(self, image_url: str) -> None:
        self.uploaded_image = image_url
        # a new image invalidates any previous result
        self.coordinator.reset()

    def change_selection(self, selection: Optional[str]) -> None:
        self.selection = selection

    def select_service(self, service: Union[ServiceKind, str]) -> None:
        self.selected_service = ServiceKind(service)

    def request_vip(self) -> None:
        self.show_vip_modal = True

    def close_vip_modal(self) -> None:
        self.show_vip_modal = False

    def grant_vip_access(self, session_key: str) -> None:
        self.vip_session = session_key
        self.show_vip_modal = False

    def new_transform(self) -> None:
        self.coordinator.reset()

    def snapshot(self) -> TransformSnapshot:
        return self.coordinator.snapshot()

    @property
    def can_transform(self) -> bool:
        return self.uploaded_image is not None and not self.coordinator.is_busy

    async def transform(
        self, prompt: str, quality: Union[QualityTier, str] = QualityTier.STANDARD
    ) -> Optional[CoordinatorState]:
        """
        Submit the current image with ``prompt``.

        Returns None when nothing was dispatched: no image, blank prompt, or a
        VIP service without a session (the VIP modal is opened instead).
        """
        if not self.uploaded_image or not prompt.strip():
            return None

        request = TransformRequest(
            original_image_ref=self.uploaded_image,
            prompt=prompt,
            service=self.selected_service,
            selection=self.selection,
            quality=QualityTier(quality),
            vip=self.selected_service is ServiceKind.VIP_MAGIC,
            vip_session=self.vip_session,
        )
        try:
            return await self.coordinator.submit(request)
        except NeedsVipSession:
            self.show_vip_modal = True
            return None
        except InvalidInput as exc:
            logger.debug("Transform not submitted: %s", exc.message)
            return None
