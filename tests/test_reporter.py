import unittest
from unittest.mock import MagicMock

import requests

from deployer.catalog import DEFAULT_FAMILIES
from deployer.reporter import ResultReporter, StackOutputs

OUTPUTS = [
    {"OutputKey": "ElasticIP", "OutputValue": "198.51.100.7"},
    {"OutputKey": "VSCodeServerURL", "OutputValue": "http://198.51.100.7:8080"},
    {"OutputKey": "SSHCommand", "OutputValue": "ssh -i key.pem ubuntu@198.51.100.7"},
    {"OutputKey": "SpotFleetId", "OutputValue": "sfr-1234"},
    {"OutputKey": "InstanceFamilies", "OutputValue": "m5,m6i,c5,c6i,r5,r6i"},
    {"OutputKey": "AvailabilityZones", "OutputValue": "us-west-2a,us-west-2b"},
    {"OutputKey": "Unrelated", "OutputValue": "ignored"},
]


class TestStackOutputs(unittest.TestCase):
    def test_from_api(self):
        out = StackOutputs.from_api(OUTPUTS)
        self.assertEqual(out.elastic_ip, "198.51.100.7")
        self.assertEqual(out.spot_fleet_id, "sfr-1234")
        self.assertEqual(out.ssh_command, "ssh -i key.pem ubuntu@198.51.100.7")

    def test_missing_keys_are_none(self):
        out = StackOutputs.from_api([{"OutputKey": "ElasticIP", "OutputValue": "1.2.3.4"}])
        self.assertIsNone(out.endpoint_url)


class TestResultReporter(unittest.TestCase):
    def setUp(self):
        self.cfn = MagicMock()
        self.ec2 = MagicMock()
        self.http_get = MagicMock()
        self.sleep = MagicMock()
        self.reporter = ResultReporter(
            self.cfn, self.ec2, "fleet", port=8080, attempts=25, interval=30, http_get=self.http_get, sleep=self.sleep
        )
        self.outputs = StackOutputs.from_api(OUTPUTS)

    def test_fetch_outputs(self):
        self.cfn.describe_stacks.return_value = {"Stacks": [{"Outputs": OUTPUTS}]}
        self.assertEqual(self.reporter.fetch_outputs().endpoint_url, "http://198.51.100.7:8080")

    def test_no_outputs(self):
        self.cfn.describe_stacks.return_value = {"Stacks": [{"StackStatus": "CREATE_COMPLETE"}]}
        self.assertIsNone(self.reporter.report(DEFAULT_FAMILIES, {}))

    def test_summary_contains_outputs_and_prices(self):
        prices = {f.name: f.default_price for f in DEFAULT_FAMILIES}
        text = self.reporter.render_summary(self.outputs, DEFAULT_FAMILIES, prices)
        self.assertIn("Elastic IP: 198.51.100.7", text)
        self.assertIn("Spot Fleet ID: sfr-1234", text)
        self.assertIn("c6i: $0.280", text)

    def test_endpoint_ready_on_third_attempt(self):
        self.http_get.side_effect = [requests.ConnectionError(), requests.Timeout(), MagicMock(status_code=200)]
        self.ec2.describe_spot_fleet_instances.return_value = {"ActiveInstances": [{"InstanceId": "i-1"}]}
        self.assertTrue(self.reporter.wait_for_endpoint(self.outputs))
        self.assertEqual(self.http_get.call_count, 3)
        self.http_get.assert_called_with("http://198.51.100.7:8080", timeout=5)
        self.ec2.describe_spot_fleet_instances.assert_called_once_with(SpotFleetRequestId="sfr-1234")

    def test_any_http_response_counts(self):
        self.http_get.return_value = MagicMock(status_code=502)
        self.assertTrue(self.reporter.wait_for_endpoint(self.outputs))

    def test_endpoint_never_ready_is_a_warning(self):
        self.http_get.side_effect = requests.ConnectionError()
        with self.assertLogs("deployer.reporter", level="WARNING") as logs:
            self.assertFalse(self.reporter.wait_for_endpoint(self.outputs))
        self.assertEqual(self.http_get.call_count, 25)
        self.assertEqual(self.sleep.call_count, 24)
        self.assertTrue(any("not responding after 25 attempts" in line for line in logs.output))
        self.ec2.describe_spot_fleet_instances.assert_not_called()

    def test_no_elastic_ip_skips_readiness_check(self):
        self.assertFalse(self.reporter.wait_for_endpoint(StackOutputs()))
        self.http_get.assert_not_called()


if __name__ == "__main__":
    unittest.main()
