import pytest

from pdf_server import app


@pytest.fixture
def client():
    app.config["TESTING"] = True
    with app.test_client() as client:
        yield client


@pytest.fixture
def sample_request():
    return {
        "Request Number": "123",
        "Status": "Completed",
        "Name": "Sara Ahmed",
        "College": "College of Engineering",
        "Department": "Electrical",
        "Location": "Building 4, Room 210",
        "Mobile Number": "0501234567",
        "Description": "Air conditioning unit leaking water onto the floor.",
        "Request Date": "2024-01-05T10:30:00Z",
        "Amount": 150,
    }


@pytest.fixture
def make_requests():
    def build(count):
        return [
            {
                "Request Number": f"R-{i:03d}",
                "Status": "Waiting" if i % 2 else "Approved",
                "College": "College of Science",
                "Department": "Physics",
                "Location": "Lab 3",
                "Description": f"Broken projector number {i}",
                "Request Date": f"2024-03-{i % 28 + 1:02d}",
            }
            for i in range(count)
        ]

    return build
