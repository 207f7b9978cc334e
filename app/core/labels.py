import logging
from typing import Iterable, List, Optional
from app.core.errors import NotFound, PermissionDenied, ValidationFailed, require_text
from app.core.roles import RoleResolver
from app.models.project import Label

logger = logging.getLogger(__name__)

DEFAULT_LABEL_COLOR = "#64748b"


class LabelCatalog:
    """
    Project labels and their attachment to tickets.

    Only a PO of the project manages the label set. A ticket's labels may be
    changed by a PO or by the ticket's assignee. Label changes are plain data
    edits and write no system comment.
    """

    def __init__(self, store, roles: Optional[RoleResolver] = None):
        self.store = store
        self.roles = roles or RoleResolver(store)

    def for_project(self, project_id: str) -> List[Label]:
        self.store.get_project(project_id)
        return self.store.list_labels(project_id)

    def for_ticket(self, ticket_id: int) -> List[Label]:
        self.store.get_ticket(ticket_id)
        return self.store.list_ticket_labels(ticket_id)

    def create_label(self, project_id: str, actor_id: str, name: Optional[str], color: str = DEFAULT_LABEL_COLOR) -> Label:
        project = self.store.get_project(project_id)
        self._require_po(actor_id, project.id)
        name = require_text(name, "name")
        if self.store.find_label_by_name(project.id, name) is not None:
            raise ValidationFailed("Label already exists in this project", field="name", name=name)
        with self.store.atomic():
            label = self.store.insert_label(project.id, name, color or DEFAULT_LABEL_COLOR)
        logger.info("Label created. project=%s label=%s actor=%s", project.id, label.id, actor_id)
        return label

    def delete_label(self, project_id: str, label_id: str, actor_id: str) -> None:
        project = self.store.get_project(project_id)
        self._require_po(actor_id, project.id)
        label = self._project_label(project.id, label_id)
        with self.store.atomic():
            self.store.delete_label(label)
        logger.info("Label deleted. project=%s label=%s actor=%s", project.id, label_id, actor_id)

    def attach(self, ticket_id: int, label_id: str, actor_id: str) -> List[Label]:
        ticket = self.store.get_ticket(ticket_id)
        self._require_manager(actor_id, ticket)
        label = self._project_label(ticket.project_id, label_id)
        if self.store.get_ticket_label(ticket.id, label.id) is None:
            with self.store.atomic():
                self.store.insert_ticket_label(ticket.id, label.id)
        return self.store.list_ticket_labels(ticket.id)

    def detach(self, ticket_id: int, label_id: str, actor_id: str) -> List[Label]:
        ticket = self.store.get_ticket(ticket_id)
        self._require_manager(actor_id, ticket)
        link = self.store.get_ticket_label(ticket.id, label_id)
        if link is None:
            raise NotFound("Label is not attached to this ticket", ticket_id=ticket.id, label_id=label_id)
        with self.store.atomic():
            self.store.delete_ticket_label(link)
        return self.store.list_ticket_labels(ticket.id)

    def validate_for_project(self, project_id: str, label_ids: Iterable[str]) -> List[str]:
        """Deduplicated label ids, each checked to belong to the project."""
        checked: List[str] = []
        for label_id in label_ids or ():
            if label_id not in checked:
                checked.append(self._project_label(project_id, label_id).id)
        return checked

    def _project_label(self, project_id: str, label_id: str) -> Label:
        label = self.store.get_label(label_id)
        if label.project_id != project_id:
            raise ValidationFailed("Label belongs to a different project", field="label_id", label_id=label_id)
        return label

    def _require_po(self, actor_id: str, project_id: str) -> None:
        if not self.roles.role_of(actor_id, project_id).is_po:
            raise PermissionDenied("Only a PO of this project may manage labels", actor_id=actor_id, project_id=project_id)

    def _require_manager(self, actor_id: str, ticket) -> None:
        caps = self.roles.role_of(actor_id, ticket.project_id)
        if not (caps.is_po or caps.is_assignee(ticket)):
            raise PermissionDenied("Only a PO or the assignee may change ticket labels", actor_id=actor_id, ticket_id=ticket.id)
