# pqms/services/container.py

"""
도메인 서비스를 한곳에서 조립하는 서비스 컨테이너 모듈입니다.

각 서비스는 세션 팩토리, 게이트웨이, 설정을 생성자로 주입받으며
다른 서비스가 소유한 작업은 게이트웨이를 통해서만 호출합니다.
컨테이너는 모든 도메인의 메시지 핸들러를 하나의 레지스트리에 등록합니다.
"""

from typing import Optional

from pqms.core.config import Settings
from pqms.core.database import SessionFactory
from pqms.core.gateway import MessageRegistry, ServiceGateway, build_gateway

from pqms.domains.qc import handlers as qc_handlers
from pqms.domains.qc.services import ResultService, SampleService, TestCatalogService
from pqms.domains.qa import handlers as qa_handlers
from pqms.domains.qa.services import ReleaseService
from pqms.domains.inv import handlers as inv_handlers
from pqms.domains.inv.services import DispositionReceiver


class ServiceContainer:
    def __init__(
        self,
        session_factory: SessionFactory,
        settings: Settings,
        gateway: Optional[ServiceGateway] = None,
    ):
        self.session_factory = session_factory
        self.settings = settings
        self.registry = MessageRegistry()
        self.gateway = gateway or build_gateway(
            settings.GATEWAY_MODE,
            self.registry,
            settings.SERVICE_URLS,
            settings.GATEWAY_TIMEOUT_SECONDS,
        )

        self.catalog = TestCatalogService(session_factory, self.gateway)
        self.samples = SampleService(session_factory, self.gateway, settings)
        self.results = ResultService(session_factory, self.gateway, settings)
        self.releases = ReleaseService(session_factory, self.gateway, settings)
        self.inventory = DispositionReceiver(session_factory)

        # 핸들러는 호출 시점에 self.<서비스>를 조회합니다.
        qc_handlers.register(self.registry, self)
        qa_handlers.register(self.registry, self)
        inv_handlers.register(self.registry, self)
