import os
import tempfile
import unittest
from unittest.mock import MagicMock

from botocore.exceptions import ClientError

from deployer.catalog import DEFAULT_FAMILIES
from deployer.errors import DeploymentCancelled
from deployer.stack import CREATE, NO_CHANGE, UPDATE, StackDeployer, StackIdentity, build_parameters

PRICES = {"m5": 0.5, "m6i": 0.35, "c5": 0.3125, "c6i": 0.28, "r5": 0.45, "r6i": 0.4}


def missing_stack_error():
    return ClientError(
        {"Error": {"Code": "ValidationError", "Message": "Stack with id fleet does not exist"}}, "DescribeStacks"
    )


class TestBuildParameters(unittest.TestCase):
    def test_key_and_one_price_per_family(self):
        params = build_parameters("my-key", DEFAULT_FAMILIES, PRICES)
        as_dict = {p["ParameterKey"]: p["ParameterValue"] for p in params}
        self.assertEqual(params[0], {"ParameterKey": "KeyName", "ParameterValue": "my-key"})
        self.assertEqual(len(params), 7)
        self.assertEqual(as_dict["SpotPriceM5"], "0.500")
        self.assertEqual(as_dict["SpotPriceM6i"], "0.350")
        self.assertEqual(as_dict["SpotPriceR6i"], "0.400")


class TestStackDeployer(unittest.TestCase):
    def setUp(self):
        self.cfn = MagicMock()
        self.confirm = MagicMock(return_value=True)
        self.template = tempfile.NamedTemporaryFile(mode="w", delete=False, suffix=".yaml")
        self.template.write("AWSTemplateFormatVersion: '2010-09-09'\n")
        self.template.close()
        self.deployer = StackDeployer(
            self.cfn,
            StackIdentity("fleet", "us-west-2", "my-key"),
            self.template.name,
            self.confirm,
            tags={"Purpose": "Testing"},
        )

    def tearDown(self):
        if os.path.exists(self.template.name):
            os.unlink(self.template.name)

    def test_missing_stack_means_create(self):
        self.cfn.describe_stacks.side_effect = missing_stack_error()
        self.assertEqual(self.deployer.choose_operation(), CREATE)
        self.confirm.assert_not_called()

    def test_existing_stack_confirmed_update(self):
        self.cfn.describe_stacks.return_value = {"Stacks": [{"StackStatus": "CREATE_COMPLETE"}]}
        self.assertEqual(self.deployer.choose_operation(), UPDATE)
        self.confirm.assert_called_once()

    def test_existing_stack_declined(self):
        self.cfn.describe_stacks.return_value = {"Stacks": [{"StackStatus": "CREATE_COMPLETE"}]}
        self.confirm.return_value = False
        with self.assertRaises(DeploymentCancelled) as ctx:
            self.deployer.choose_operation()
        self.assertEqual(ctx.exception.exit_code, 1)

    def test_other_describe_errors_propagate(self):
        self.cfn.describe_stacks.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "nope"}}, "DescribeStacks"
        )
        with self.assertRaises(ClientError):
            self.deployer.stack_exists()

    def test_create_request(self):
        self.cfn.create_stack.return_value = {"StackId": "arn:stack/fleet"}
        self.assertEqual(self.deployer.deploy(CREATE, DEFAULT_FAMILIES, PRICES), CREATE)
        kwargs = self.cfn.create_stack.call_args.kwargs
        self.assertEqual(kwargs["StackName"], "fleet")
        self.assertEqual(kwargs["Capabilities"], ["CAPABILITY_IAM"])
        self.assertIn("AWSTemplateFormatVersion", kwargs["TemplateBody"])
        self.assertEqual(kwargs["Tags"], [{"Key": "Purpose", "Value": "Testing"}])
        self.assertIn({"ParameterKey": "SpotPriceC5", "ParameterValue": "0.312"}, kwargs["Parameters"])
        self.cfn.update_stack.assert_not_called()

    def test_update_request_has_no_tags(self):
        self.cfn.update_stack.return_value = {"StackId": "arn:stack/fleet"}
        self.deployer.deploy(UPDATE, DEFAULT_FAMILIES, PRICES)
        kwargs = self.cfn.update_stack.call_args.kwargs
        self.assertNotIn("Tags", kwargs)
        self.assertEqual(len(kwargs["Parameters"]), 7)
        self.cfn.create_stack.assert_not_called()

    def test_update_without_changes(self):
        self.cfn.update_stack.side_effect = ClientError(
            {"Error": {"Code": "ValidationError", "Message": "No updates are to be performed."}}, "UpdateStack"
        )
        self.assertEqual(self.deployer.deploy(UPDATE, DEFAULT_FAMILIES, PRICES), NO_CHANGE)


if __name__ == "__main__":
    unittest.main()
