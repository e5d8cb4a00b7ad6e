"""
End-to-end tests: workbook bytes through the service and the HTTP API.
"""

import asyncio
import io

import pytest
from fastapi.testclient import TestClient
from openpyxl import Workbook

from stoplist.api import create_app, get_service
from stoplist.errors import UploadNotFoundError, WorkbookError
from stoplist.parsing import parse_workbook
from stoplist.schemas import AppConfig, Settings
from stoplist.service import StopListService


WIDTH = 21
XLSX_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def make_row(cells):
    row = [""] * WIDTH
    for column, value in cells.items():
        row[column] = value
    return row


def create_workbook_bytes(rows):
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def create_omnitracs_rows():
    """One route: three stops followed by a depot resupply."""
    return [
        make_row({0: "Route Id: R1"}),
        make_row({0: "E77: Pat Driver", 8: "48LG"}),
        make_row({0: "Route Start Time: 10/16/2025 04:00 EDT"}),
        make_row({0: "Stop", 1: "Location"}),
        make_row({0: "1", 1: "LOC1", 3: "First Stop", 8: "06:00", 11: "06:20", 13: "0:20", 15: "500"}),
        make_row({1: "100 Peachtree St, Atlanta, GA 30303"}),
        make_row({0: "2", 1: "LOC2", 3: "Second Stop", 8: "07:00", 11: "07:30", 13: "0:30", 15: "700"}),
        make_row({1: "200 Spring St, Atlanta, GA 30308"}),
        make_row({0: "3", 1: "LOC3", 3: "Third Stop", 8: "08:10", 11: "08:25", 13: "0:15", 15: "300"}),
        make_row({1: "300 Marietta St, Atlanta, GA 30313"}),
        make_row({0: "Depot", 1: "DEP", 3: "ATL Depot", 8: "09:00", 11: "09:45", 13: "0:45"}),
        make_row({1: "1 Depot Way, Atlanta, GA", 15: "300", 16: "18", 17: "12,500"}),
    ]


class FakeOptimizerClient:
    def __init__(self):
        self.submitted = []

    async def submit(self, body):
        self.submitted.append(body)
        return f"req-{len(self.submitted)}"

    async def poll(self, request_id):
        return {"status": "Ok", "result": {"summary": {}, "unassigned": []}}

    async def submit_and_poll(self, body):
        request_id = await self.submit(body)
        return {"requestId": request_id, "result": await self.poll(request_id)}

    async def close(self):
        return None


def create_test_config(tmp_path):
    return AppConfig(
        cache={"path": str(tmp_path / "geocode-cache.json")},
        database={"url": f"sqlite:///{tmp_path / 'uploads.db'}"},
        logging={"level": "INFO", "format": "%(message)s"},
        dev={"mock_geocoder": True},
    )


@pytest.fixture
def service(tmp_path):
    svc = StopListService(
        config=create_test_config(tmp_path),
        settings=Settings(nextbillion_api_key="test-key"),
        optimizer_client=FakeOptimizerClient(),
    )
    yield svc
    asyncio.run(svc.close())


def test_parse_workbook_bytes():
    route_set = parse_workbook(create_workbook_bytes(create_omnitracs_rows()), file_name="ATL routes.xlsx")

    assert route_set.total_routes == 1
    assert route_set.total_deliveries == 4
    route = route_set.routes[0]
    assert route.driver_name == "Pat Driver"
    assert route.equipment_type == "48LG"
    depot = route.deliveries[-1]
    assert depot.is_depot_resupply
    assert (depot.pallets, depot.weight) == ("18", "12500")


def test_unreadable_workbook():
    with pytest.raises(WorkbookError):
        parse_workbook(b"not a workbook", file_name="broken.xlsx")


def test_process_workbook(service):
    payload = create_workbook_bytes(create_omnitracs_rows())
    result = asyncio.run(service.process_workbook("ATL routes.xlsx", payload))

    assert result["fileName"] == "ATL routes.xlsx"
    assert result["uploadId"]
    assert result["totalDeliveries"] == 4
    assert result["routes"][0]["status"] == "complete"
    stats = result["geocodingStats"]
    assert stats["succeeded"] == 4
    assert stats["failed"] == 0
    assert stats["cacheSize"] == 4

    saved = service.get_upload(result["uploadId"])
    assert saved["routes"][0]["deliveries"][0]["geocode"]["geocodedWith"] == "address"
    assert [u["id"] for u in service.list_uploads()] == [result["uploadId"]]

    csv_text = service.export_csv(result["uploadId"])
    assert len(csv_text.strip().splitlines()) == 5


def test_second_upload_hits_cache(service):
    payload = create_workbook_bytes(create_omnitracs_rows())
    asyncio.run(service.process_workbook("ATL routes.xlsx", payload, save=False))
    result = asyncio.run(service.process_workbook("ATL routes.xlsx", payload, save=False))

    assert result["uploadId"] is None
    assert result["geocodingStats"]["cacheHits"] == 4
    assert service.list_uploads() == []


def test_upload_validation(service):
    with pytest.raises(WorkbookError):
        service.validate_upload("routes.csv", 100)
    with pytest.raises(WorkbookError):
        service.validate_upload("routes.xlsx", 11 * 1024 * 1024)
    service.validate_upload("ROUTES.XLSX", 100)


def test_missing_upload(service):
    with pytest.raises(UploadNotFoundError):
        service.get_upload("missing")
    assert service.delete_upload("missing") is False


def test_optimize_saved_upload(service):
    payload = create_workbook_bytes(create_omnitracs_rows())
    upload_id = asyncio.run(service.process_workbook("ATL routes.xlsx", payload))["uploadId"]

    outcome = asyncio.run(service.optimize_route(upload_id, "R1"))

    assert outcome["routeId"] == "R1"
    submitted = service._optimizer_client.submitted
    assert len(submitted) == 2
    # Depot comes from the ATL file-name prefix
    assert submitted[0]["locations"]["location"][0] == "33.807970,-84.43696"
    assert len(submitted[0]["jobs"]) == 4


def test_cache_maintenance(service):
    payload = create_workbook_bytes(create_omnitracs_rows())
    asyncio.run(service.process_workbook("ATL routes.xlsx", payload, save=False))

    assert service.prune_cache() == 0
    assert service.clear_cache() == 4
    assert len(service.cache) == 0


def test_api_round_trip(service):
    app = create_app()
    app.dependency_overrides[get_service] = lambda: service
    client = TestClient(app)
    payload = create_workbook_bytes(create_omnitracs_rows())

    response = client.post("/api/upload", files={"file": ("ATL routes.xlsx", payload, XLSX_TYPE)})
    assert response.status_code == 200
    upload_id = response.json()["uploadId"]
    assert response.json()["totalRoutes"] == 1

    assert client.get("/api/uploads").json()[0]["id"] == upload_id
    assert client.get(f"/api/uploads/{upload_id}").json()["fileName"] == "ATL routes.xlsx"

    csv_response = client.get(f"/api/uploads/{upload_id}/csv")
    assert csv_response.status_code == 200
    assert csv_response.headers["content-type"].startswith("text/csv")

    optimized = client.post("/api/optimize/R1", json={"uploadId": upload_id})
    assert optimized.status_code == 200
    assert optimized.json()["requestIds"] == {"inSequence": "req-1", "noSequence": "req-2"}

    assert client.delete(f"/api/uploads/{upload_id}").status_code == 204
    assert client.get(f"/api/uploads/{upload_id}").status_code == 404

    health = client.get("/api/health").json()
    assert health["status"] == "ok"
    assert health["database_connected"] is True


def test_api_rejects_bad_requests(service):
    app = create_app()
    app.dependency_overrides[get_service] = lambda: service
    client = TestClient(app)

    response = client.post("/api/upload", files={"file": ("notes.txt", b"hello", "text/plain")})
    assert response.status_code == 400

    assert client.post("/api/optimize/R1", json={}).status_code == 400
    assert client.post("/api/optimize-all", json={"uploadId": "missing"}).status_code == 404

    cleared = client.delete("/api/cache/clear")
    assert cleared.json()["success"] is True


def test_break_and_name_only_stop(service):
    """A stop with no address row is found by name; the break is never geocoded."""
    rows = [
        make_row({0: "Route Id: R9"}),
        make_row({0: "Stop", 1: "Location"}),
        make_row({0: "1", 1: "LOC1", 3: "Full Address Stop", 8: "06:00", 11: "06:20"}),
        make_row({1: "100 Peachtree St, Atlanta, GA 30303"}),
        make_row({0: "2", 1: "LOC2", 3: "Nameonly Market", 8: "07:00", 11: "07:30"}),
        make_row({0: "Paid Break", 8: "08:00", 11: "08:30"}),
        make_row({0: "Depot", 1: "DEP", 3: "ATL Depot", 8: "09:00", 11: "09:45"}),
        make_row({1: "1 Depot Way, Atlanta, GA", 15: "300", 16: "18", 17: "12,500"}),
    ]
    result = asyncio.run(service.process_workbook("R9.xlsx", create_workbook_bytes(rows), save=False))

    assert result["totalDeliveries"] == 4
    stop, named, brk, depot = result["routes"][0]["deliveries"]
    assert stop["address"] == "100 Peachtree St, Atlanta, GA 30303"
    assert named["address"] == ""
    assert brk["isBreak"] is True
    assert brk["geocode"] is None
    assert depot["isDepotResupply"] is True

    assert named["geocode"]["geocodedWith"] == "locationName"
    stats = result["geocodingStats"]
    # Stop and depot both carry addresses
    assert stats["pass1"]["processed"] == 2
    assert stats["pass2"]["processed"] == 1
