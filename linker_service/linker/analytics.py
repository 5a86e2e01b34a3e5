from sqlalchemy.orm import Session

from linker.models import Link, File, Click, FileDownload
from linker.resolver import ResolvedResource, ResourceKind
from linker.utils import best_effort

class AnalyticsRecorder:
    """Учет обращений к ресурсам.

    Инкремент счетчика и запись события выполняются независимо, каждая
    своей транзакцией. Ошибка любой из них логируется и не влияет на ответ.
    """

    def __init__(self, db: Session, enabled: bool = True):
        self.db = db
        self.enabled = enabled

    def increment(self, resource: ResolvedResource) -> None:
        """Атомарно увеличивает счетчик кликов или скачиваний"""
        with best_effort(f"инкремент счетчика ({resource.kind.value})", self.db):
            if resource.kind is ResourceKind.LINK:
                self.db.query(Link).filter(Link.id == resource.resource_id).update(
                    {Link.clicks: Link.clicks + 1}, synchronize_session=False
                )
            else:
                self.db.query(File).filter(File.id == resource.resource_id).update(
                    {File.downloads: File.downloads + 1}, synchronize_session=False
                )

    def record(self, resource: ResolvedResource, client_info: dict) -> None:
        """Записывает событие доступа, если аналитика включена для ресурса"""
        if not self.enabled:
            return

        with best_effort(f"запись события доступа ({resource.kind.value})", self.db):
            if not resource.record.analytics:
                return

            resource_id = resource.resource_id
            if resource.kind is ResourceKind.LINK:
                event = Click(link_id=resource_id)
            else:
                event = FileDownload(file_id=resource_id)

            event.ip_address = client_info.get("ip_address")
            event.user_agent = client_info.get("user_agent")
            event.referer = client_info.get("referer")
            self.db.add(event)

    def track(self, resource: ResolvedResource, client_info: dict) -> None:
        self.increment(resource)
        self.record(resource, client_info)
