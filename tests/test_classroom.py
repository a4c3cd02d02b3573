from conftest import bearer, login, register


def create_classroom(client, headers, name='CS101'):
    resp = client.post('/api/classroom/create', json={'name': name, 'description': 'Intro'}, headers=headers)
    assert resp.status_code == 201
    return resp.get_json()['classroomId']


def test_classroom_crud(client, staff_headers):
    assert client.post('/api/classroom/create', json={}, headers=staff_headers).status_code == 400
    cid = create_classroom(client, staff_headers)

    resp = client.get(f'/api/classroom/id/{cid}', headers=staff_headers)
    assert resp.get_json()['classroom']['name'] == 'CS101'
    assert resp.get_json()['classroom']['created_by'] == 'T1'

    resp = client.put(f'/api/classroom/{cid}', json={'name': 'CS102'}, headers=staff_headers)
    assert resp.status_code == 200
    names = [c['name'] for c in client.get('/api/classroom/all', headers=staff_headers).get_json()['classrooms']]
    assert names == ['CS102']

    mine = client.get('/api/classroom/user/me', headers=staff_headers).get_json()['classrooms']
    assert [c['classroom_id'] for c in mine] == [cid]

    assert client.delete(f'/api/classroom/{cid}', headers=staff_headers).status_code == 200
    assert client.get(f'/api/classroom/id/{cid}', headers=staff_headers).status_code == 404


def test_staff_membership(client, staff_headers):
    cid = create_classroom(client, staff_headers)
    register(client, 'T2', 'staff2@x.com', role='staff')

    resp = client.post(f'/api/classroom/{cid}/staff', json={'staffEmail': 'staff2@x.com'}, headers=staff_headers)
    assert resp.status_code == 201
    resp = client.post(f'/api/classroom/{cid}/staff', json={'staffEmail': 'staff2@x.com'}, headers=staff_headers)
    assert resp.status_code == 403
    assert resp.get_json()['error'] == 'Staff is already a part of the classroom'

    staff = client.get(f'/api/classroom/{cid}/staff', headers=staff_headers).get_json()['staff']
    assert [s['roll_no'] for s in staff] == ['T2']

    staff2_headers = bearer(login(client, 'staff2@x.com'))
    mine = client.get('/api/classroom/user/me', headers=staff2_headers).get_json()['classrooms']
    assert [c['classroom_id'] for c in mine] == [cid]

    resp = client.delete(f"/api/classroom/{cid}/staff/{staff[0]['user_id']}", headers=staff_headers)
    assert resp.status_code == 200
    resp = client.delete(f"/api/classroom/{cid}/staff/{staff[0]['user_id']}", headers=staff_headers)
    assert resp.status_code == 404


def test_student_membership(client, staff_headers):
    cid = create_classroom(client, staff_headers)
    register(client, 'S1', 'a@x.com')
    register(client, 'S2', 'b@x.com')
    register(client, 'T9', 'not-a-student@x.com', role='staff')

    resp = client.post(f'/api/classroom/{cid}/students',
                       json={'studentEmails': ['a@x.com', 'B@x.com', 'not-a-student@x.com']},
                       headers=staff_headers)
    assert resp.status_code == 201
    assert resp.get_json()['added'] == 2

    resp = client.post(f'/api/classroom/{cid}/students', json={'studentEmails': ['a@x.com']},
                       headers=staff_headers)
    assert resp.status_code == 404

    students = client.get(f'/api/classroom/{cid}/student', headers=staff_headers).get_json()['students']
    assert sorted(s['roll_no'] for s in students) == ['S1', 'S2']

    sid = students[0]['user_id']
    assert client.delete(f'/api/classroom/{cid}/student/{sid}', headers=staff_headers).status_code == 200
    students = client.get(f'/api/classroom/{cid}/student', headers=staff_headers).get_json()['students']
    assert len(students) == 1
