#!/usr/bin/env python3
"""
Unit tests for the OSRM client (HTTP is mocked)
"""

import unittest
from unittest.mock import Mock

import requests

from schoolbus.costmatrix import UNREACHABLE_PENALTY_KM
from schoolbus.errors import RoutingServiceError
from schoolbus.geodistance import Node
from schoolbus.osrm import OSRMClient


def make_session(payload=None, error=None, http_error=None):
    session = Mock()
    if error is not None:
        session.get.side_effect = error
        return session
    response = Mock()
    response.json.return_value = payload
    if http_error is not None:
        response.raise_for_status.side_effect = http_error
    session.get.return_value = response
    return session


class TestOSRMClient(unittest.TestCase):
    """Base fixtures"""

    def setUp(self):
        self.nodes = [
            Node("School", 37.1299, -80.4094),
            Node("Student 1", 37.1310, -80.4075),
            Node("Student 2", 37.1350, -80.4100),
        ]


class TestTable(TestOSRMClient):
    """Test distance matrix requests"""

    def test_converts_meters_and_fills_gaps(self):
        """Test meters become km and null entries get the penalty"""
        session = make_session({
            "code": "Ok",
            "distances": [[0, 1500, None], [1500, 0, 800], [2000, 900, 0]],
        })
        client = OSRMClient(session=session)

        matrix = client.matrix(self.nodes)

        self.assertEqual(matrix[0][1], 1.5)
        self.assertEqual(matrix[0][2], UNREACHABLE_PENALTY_KM)
        self.assertEqual(matrix[2][1], 0.9)

    def test_request_format(self):
        """Test coordinates are sent as lng,lat pairs"""
        session = make_session({"code": "Ok", "distances": [[0, 1, 1], [1, 0, 1], [1, 1, 0]]})
        client = OSRMClient(base_url="http://osrm.local/", session=session, timeout=3)

        client.matrix(self.nodes)

        args, kwargs = session.get.call_args
        self.assertEqual(
            args[0],
            "http://osrm.local/table/v1/driving/-80.4094,37.1299;-80.4075,37.131;-80.41,37.135",
        )
        self.assertEqual(kwargs["params"], {"annotations": "distance"})
        self.assertEqual(kwargs["timeout"], 3)

    def test_node_limit(self):
        """Test too many nodes fail without a request"""
        session = make_session({})
        client = OSRMClient(session=session, max_nodes=2)

        with self.assertRaises(RoutingServiceError):
            client.matrix(self.nodes)
        session.get.assert_not_called()

    def test_http_error(self):
        """Test HTTP failures become RoutingServiceError"""
        client = OSRMClient(session=make_session({}, http_error=requests.HTTPError("503 Server Error")))
        with self.assertRaises(RoutingServiceError):
            client.matrix(self.nodes)

    def test_connection_error(self):
        """Test network failures become RoutingServiceError"""
        client = OSRMClient(session=make_session(error=requests.ConnectionError("unreachable")))
        with self.assertRaises(RoutingServiceError):
            client.matrix(self.nodes)

    def test_missing_distances(self):
        """Test a body without distances is rejected"""
        client = OSRMClient(session=make_session({"code": "Ok"}))
        with self.assertRaises(RoutingServiceError):
            client.matrix(self.nodes)

    def test_rows_not_lists(self):
        """Test a table whose rows are not lists is rejected"""
        client = OSRMClient(session=make_session({"code": "Ok", "distances": [0, 1, 2]}))
        with self.assertRaises(RoutingServiceError):
            client.matrix(self.nodes)

    def test_error_code(self):
        """Test an OSRM error code is rejected"""
        client = OSRMClient(session=make_session({"code": "InvalidQuery", "message": "bad"}))
        with self.assertRaises(RoutingServiceError):
            client.matrix(self.nodes)


class TestRoute(TestOSRMClient):
    """Test route geometry requests"""

    def test_geometry(self):
        """Test geojson coordinates are returned as (lat, lng)"""
        session = make_session({
            "code": "Ok",
            "routes": [{
                "geometry": {"coordinates": [[-80.4094, 37.1299], [-80.4080, 37.1305], [-80.4094, 37.1299]]},
                "distance": 12345.0,
                "duration": 600.0,
            }],
        })
        client = OSRMClient(session=session)

        geometry = client.route((0, 1, 0), self.nodes)

        self.assertEqual(geometry.points[0], (37.1299, -80.4094))
        self.assertEqual(geometry.points[1], (37.1305, -80.4080))
        self.assertEqual(len(geometry.points), 3)
        self.assertAlmostEqual(geometry.distance_km, 12.345)
        self.assertAlmostEqual(geometry.duration_minutes, 10.0)

        args, kwargs = session.get.call_args
        self.assertIn("/route/v1/driving/-80.4094,37.1299;-80.4075,37.131;-80.4094,37.1299", args[0])
        self.assertEqual(kwargs["params"], {"overview": "full", "geometries": "geojson"})

    def test_missing_distance_and_duration(self):
        """Test absent totals are reported as None"""
        session = make_session({"code": "Ok", "routes": [{"geometry": {"coordinates": [[0, 0], [1, 1]]}}]})
        geometry = OSRMClient(session=session).route((0, 1), self.nodes)

        self.assertIsNone(geometry.distance_km)
        self.assertIsNone(geometry.duration_minutes)

    def test_missing_routes(self):
        """Test a body without routes is rejected"""
        client = OSRMClient(session=make_session({"code": "Ok", "routes": []}))
        with self.assertRaises(RoutingServiceError):
            client.route((0, 1, 0), self.nodes)

    def test_invalid_geometry(self):
        """Test a route without coordinates is rejected"""
        client = OSRMClient(session=make_session({"code": "Ok", "routes": [{"geometry": None}]}))
        with self.assertRaises(RoutingServiceError):
            client.route((0, 1, 0), self.nodes)

    def test_malformed_coordinates(self):
        """Test short, non-numeric or non-dict geometry is rejected"""
        bodies = [
            {"code": "Ok", "routes": [{"geometry": {"coordinates": [[1.0], [2.0, 3.0]]}}]},
            {"code": "Ok", "routes": [{"geometry": {"coordinates": [["a", "b"], [2.0, 3.0]]}}]},
            {"code": "Ok", "routes": [{"geometry": {"coordinates": [None, [2.0, 3.0]]}}]},
            {"code": "Ok", "routes": ["not a route"]},
        ]
        for body in bodies:
            with self.subTest(body=body):
                client = OSRMClient(session=make_session(body))
                with self.assertRaises(RoutingServiceError):
                    client.route((0, 1, 0), self.nodes)

    def test_too_short(self):
        """Test a single point cannot be routed"""
        session = make_session({})
        with self.assertRaises(RoutingServiceError):
            OSRMClient(session=session).route((0,), self.nodes)
        session.get.assert_not_called()


if __name__ == "__main__":
    unittest.main()
