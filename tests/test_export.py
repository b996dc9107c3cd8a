from io import BytesIO

from openpyxl import load_workbook

from conftest import api_error


def _sheet(res):
    assert res.status_code == 200, res.get_json()
    wb = load_workbook(BytesIO(res.data))
    ws = wb.worksheets[0]
    return wb, [list(r) for r in ws.iter_rows(values_only=True)]


def _seed(world):
    job = world.job(companyName="Acme Corp")
    r1, r2 = world.rounds(job, ["Aptitude", "Interview"])
    a, _ = world.student(usn="1XX21CS001")
    b, _ = world.student(usn="1XX21CS002")
    world.attendance(job, r1, a, status="PASSED")
    world.attendance(job, r1, b, status="FAILED")
    world.attendance(job, r2, a)
    return job, r1, r2


def test_attendance_export_with_default_columns(app_client, world):
    _app, client = app_client
    _admin_id, admin = world.admin()
    job, r1, _r2 = _seed(world)

    res = client.get(f"/api/v1/admin/jobs/{job}/export.xlsx?type=attendance&roundId={r1}", headers=admin)
    assert res.mimetype == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    assert "Acme_Corp_Attendance_" in res.headers["Content-Disposition"]

    wb, rows = _sheet(res)
    assert wb.sheetnames == ["Attendance", "Meta"]
    assert rows[0] == ["Sl. No.", "USN", "Student Name", "Branch", "CGPA", "Status", "Marked At"]
    assert [r[0] for r in rows[1:]] == [1, 2]
    assert sorted(r[5] for r in rows[1:]) == ["FAILED", "PASSED"]


def test_passed_export_with_chosen_columns(app_client, world):
    _app, client = app_client
    _admin_id, admin = world.admin()
    job, _r1, _r2 = _seed(world)

    res = client.get(f"/api/v1/admin/jobs/{job}/export.xlsx?type=passed&columns=usn,round", headers=admin)
    _wb, rows = _sheet(res)
    assert rows == [["Sl. No.", "USN", "Round"], [1, "1XX21CS001", "Aptitude"]]


def test_all_rounds_export_has_one_row_per_student(app_client, world):
    _app, client = app_client
    _admin_id, admin = world.admin()
    job, _r1, _r2 = _seed(world)

    _wb, rows = _sheet(client.get(f"/api/v1/admin/jobs/{job}/export.xlsx?type=all_rounds", headers=admin))
    assert rows[0] == ["Sl. No.", "USN", "Student Name", "Branch", "Aptitude", "Interview"]
    assert rows[1][1:2] + rows[1][4:] == ["1XX21CS001", "PASSED", "ATTENDED"]
    assert rows[2][1:2] + rows[2][4:] == ["1XX21CS002", "FAILED", "-"]


def test_final_selected_export(app_client, world):
    _app, client = app_client
    _admin_id, admin = world.admin()
    uid, _h = world.student(usn="1XX21CS009")
    job = world.job()
    world.apply(job, uid)
    client.post(f"/api/v1/admin/jobs/{job}/final-selected", json={"userId": uid, "package": 9}, headers=admin)

    res = client.get(f"/api/v1/admin/jobs/{job}/export.xlsx?type=final_selected&columns=usn,package,tier", headers=admin)
    _wb, rows = _sheet(res)
    assert rows == [["Sl. No.", "USN", "Package (LPA)", "Tier"], [1, "1XX21CS009", 9, "TIER_2"]]


def test_export_errors(app_client, world):
    _app, client = app_client
    _admin_id, admin = world.admin()
    job = world.job()
    url = f"/api/v1/admin/jobs/{job}/export.xlsx"

    res = client.get(f"{url}?type=attendance", headers=admin)
    assert res.status_code == 400
    assert api_error(res)["message"] == "No data to export"

    assert client.get(f"{url}?type=everything", headers=admin).status_code == 400
    assert client.get(f"{url}?columns=usn,shoeSize", headers=admin).status_code == 400
    assert client.get("/api/v1/admin/jobs/JOB-x/export.xlsx", headers=admin).status_code == 404
