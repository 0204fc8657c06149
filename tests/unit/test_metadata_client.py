# -*- coding: utf-8 -*-
"""
Tests for MetadataClient and DeployJob
"""

import asyncio
import base64
import json
import xml.etree.ElementTree as ET

import pytest

from deltadeploy.config import DeployOptions, TestLevel
from deltadeploy.errors import StatusCheckError, SubmissionError
from deltadeploy.metadata_client import DeployJob, DeployStatus, MetadataClient

SOAP_DEPLOY_RESPONSE = """<?xml version="1.0" encoding="UTF-8"?>
<soapenv:Envelope xmlns:soapenv="http://schemas.xmlsoap.org/soap/envelope/"
                  xmlns="http://soap.sforce.com/2006/04/metadata">
    <soapenv:Body>
        <deployResponse>
            <result>
                <done>false</done>
                <id>0Af5g00000ABCDE</id>
                <state>Queued</state>
            </result>
        </deployResponse>
    </soapenv:Body>
</soapenv:Envelope>"""

SOAP_FAULT = """<?xml version="1.0" encoding="UTF-8"?>
<soapenv:Envelope xmlns:soapenv="http://schemas.xmlsoap.org/soap/envelope/">
    <soapenv:Body>
        <soapenv:Fault>
            <faultcode>sf:INVALID_SESSION_ID</faultcode>
            <faultstring>INVALID_SESSION_ID: Invalid Session ID</faultstring>
        </soapenv:Fault>
    </soapenv:Body>
</soapenv:Envelope>"""


@pytest.fixture
def metadata(sf_client):
    return MetadataClient(sf_client)


@pytest.fixture
def archive(tmp_path):
    path = tmp_path / "package.zip"
    path.write_bytes(b"PK-fake-zip")
    return path


def timed_out_response(mock_http_response):
    response = mock_http_response()
    response.__aenter__.side_effect = asyncio.TimeoutError()
    return response


def undecodable_response(mock_http_response, status=200):
    response = mock_http_response(status=status)
    response.json.side_effect = json.JSONDecodeError("Expecting value", "<html>", 0)
    return response


def option_tags(body: str):
    root = ET.fromstring(f'<root xmlns:met="urn:met">{body}</root>')
    options = root.find("{urn:met}deploy/{urn:met}DeployOptions")
    return [(child.tag.split("}")[-1], child.text) for child in options]


class TestDeployBody:

    @pytest.mark.unit
    def test_option_order(self, metadata):
        options = DeployOptions(
            check_only=True,
            test_level=TestLevel.RUN_SPECIFIED_TESTS,
            specified_tests=["ATest", "BTest"]
        )

        tags = option_tags(metadata.build_deploy_body(b"zip", options))

        assert tags == [
            ("allowMissingFiles", "false"),
            ("checkOnly", "true"),
            ("testLevel", "RunSpecifiedTests"),
            ("runTests", "ATest"),
            ("runTests", "BTest"),
            ("rollbackOnError", "true"),
            ("singlePackage", "true"),
        ]

    @pytest.mark.unit
    def test_run_tests_only_for_specified_level(self, metadata):
        options = DeployOptions(test_level="RunLocalTests", specified_tests=["ATest"])

        tags = [tag for tag, _ in option_tags(metadata.build_deploy_body(b"zip", options))]

        assert "runTests" not in tags

    @pytest.mark.unit
    def test_zip_is_base64(self, metadata):
        body = metadata.build_deploy_body(b"conteudo", DeployOptions())

        assert base64.b64encode(b"conteudo").decode() in body


class TestSubmit:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_returns_job_id(self, metadata, archive, mock_aiohttp_session, mock_http_response):
        mock_aiohttp_session.post.return_value = mock_http_response(status=200, text=SOAP_DEPLOY_RESPONSE)

        job_id = await metadata.submit(archive, DeployOptions())

        assert job_id == "0Af5g00000ABCDE"
        url = mock_aiohttp_session.post.call_args[0][0]
        headers = mock_aiohttp_session.post.call_args[1]["headers"]
        assert url == "https://empresa--uat.sandbox.my.salesforce.com/services/Soap/m/60.0"
        assert headers["SOAPAction"] == "deploy"
        assert "00D-test-token" in mock_aiohttp_session.post.call_args[1]["data"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_http_error_carries_status(self, metadata, archive, mock_aiohttp_session, mock_http_response):
        mock_aiohttp_session.post.return_value = mock_http_response(status=500, text=SOAP_FAULT)

        with pytest.raises(SubmissionError) as exc_info:
            await metadata.submit(archive, DeployOptions())

        assert exc_info.value.status_code == 500
        assert "INVALID_SESSION_ID" in str(exc_info.value)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_id(self, metadata, archive, mock_aiohttp_session, mock_http_response):
        mock_aiohttp_session.post.return_value = mock_http_response(
            status=200,
            text="<Envelope><Body><deployResponse/></Body></Envelope>"
        )

        with pytest.raises(SubmissionError):
            await metadata.submit(archive, DeployOptions())

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_timeout_is_submission_error(self, metadata, archive, mock_aiohttp_session, mock_http_response):
        mock_aiohttp_session.post.return_value = timed_out_response(mock_http_response)

        with pytest.raises(SubmissionError):
            await metadata.submit(archive, DeployOptions())

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_archive(self, metadata, tmp_path):
        with pytest.raises(SubmissionError):
            await metadata.submit(tmp_path / "nao-existe.zip", DeployOptions())

    @pytest.mark.unit
    def test_job_id_requires_exact_local_name(self):
        response = "<r><asyncProcessId>wrong</asyncProcessId><id>right</id></r>"

        assert MetadataClient.extract_job_id(response) == "right"


class TestCheckStatus:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_parses_deploy_result(self, metadata, mock_aiohttp_session, mock_http_response):
        mock_aiohttp_session.get.return_value = mock_http_response(
            status=200,
            json_data={
                "id": "0Af1",
                "deployResult": {
                    "id": "0Af1",
                    "status": "InProgress",
                    "done": False,
                    "numberComponentsDeployed": 3,
                    "numberComponentsTotal": 10,
                    "stateDetail": "Processing Type: ApexClass"
                }
            }
        )

        job = await metadata.check_status("0Af1")

        assert job.status == DeployStatus.IN_PROGRESS
        assert not job.done
        assert job.components_deployed == 3
        url = mock_aiohttp_session.get.call_args[0][0]
        assert url.endswith("/services/data/v60.0/metadata/deployRequest/0Af1")
        assert mock_aiohttp_session.get.call_args[1]["params"] == {"includeDetails": "true"}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_http_error(self, metadata, mock_aiohttp_session, mock_http_response):
        mock_aiohttp_session.get.return_value = mock_http_response(status=404, text="NOT_FOUND")

        with pytest.raises(StatusCheckError) as exc_info:
            await metadata.check_status("0Af1")

        assert exc_info.value.status_code == 404

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_timeout_is_status_check_error(self, metadata, mock_aiohttp_session, mock_http_response):
        mock_aiohttp_session.get.return_value = timed_out_response(mock_http_response)

        with pytest.raises(StatusCheckError):
            await metadata.check_status("0Af1")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_undecodable_body_is_status_check_error(self, metadata, mock_aiohttp_session, mock_http_response):
        mock_aiohttp_session.get.return_value = undecodable_response(mock_http_response)

        with pytest.raises(StatusCheckError) as exc_info:
            await metadata.check_status("0Af1")

        assert "Resposta invalida" in str(exc_info.value)


class TestQuickDeploy:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_returns_new_job(self, metadata, mock_aiohttp_session, mock_http_response):
        mock_aiohttp_session.post.return_value = mock_http_response(status=201, json_data={"id": "0Af2"})

        job_id = await metadata.quick_deploy("0Af1")

        assert job_id == "0Af2"
        assert mock_aiohttp_session.post.call_args[1]["json"] == {"validatedDeployRequestId": "0Af1"}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_rejected(self, metadata, mock_aiohttp_session, mock_http_response):
        mock_aiohttp_session.post.return_value = mock_http_response(status=400, text="INVALID_ID_FIELD")

        with pytest.raises(SubmissionError):
            await metadata.quick_deploy("0Af1")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_timeout(self, metadata, mock_aiohttp_session, mock_http_response):
        mock_aiohttp_session.post.return_value = timed_out_response(mock_http_response)

        with pytest.raises(SubmissionError):
            await metadata.quick_deploy("0Af1")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_undecodable_body(self, metadata, mock_aiohttp_session, mock_http_response):
        mock_aiohttp_session.post.return_value = undecodable_response(mock_http_response, status=201)

        with pytest.raises(SubmissionError):
            await metadata.quick_deploy("0Af1")


class TestDeployJob:

    @pytest.mark.unit
    def test_failures_as_single_objects(self):
        job = DeployJob.from_response({
            "deployResult": {
                "id": "0Af1",
                "status": "Failed",
                "done": True,
                "numberComponentErrors": 1,
                "numberTestErrors": 1,
                "details": {
                    "componentFailures": {
                        "componentType": "ApexClass",
                        "fileName": "classes/A.cls",
                        "fullName": "A",
                        "problem": "Unexpected token",
                        "problemType": "Error"
                    },
                    "runTestResult": {
                        "failures": [{
                            "name": "ATest",
                            "methodName": "deveFuncionar",
                            "message": "System.AssertException",
                            "stackTrace": "Class.ATest.deveFuncionar: line 5"
                        }]
                    }
                }
            }
        })

        assert job.is_terminal
        assert not job.succeeded
        assert str(job.component_failures[0]) == "ApexClass A: Unexpected token"
        assert job.test_failures[0].method_name == "deveFuncionar"
        assert job.has_failures

    @pytest.mark.unit
    def test_unknown_status_when_done_is_failed(self):
        job = DeployJob.from_response({"deployResult": {"id": "x", "status": "Exotic", "done": True}})

        assert job.status == DeployStatus.FAILED

    @pytest.mark.unit
    def test_unknown_status_while_running(self):
        job = DeployJob.from_response({"deployResult": {"id": "x", "status": "Exotic", "done": False}})

        assert job.status == DeployStatus.IN_PROGRESS
        assert not job.is_terminal

    @pytest.mark.unit
    def test_progress_text(self):
        job = DeployJob.from_response({"deployResult": {
            "id": "x", "status": "InProgress", "done": False,
            "numberComponentsDeployed": 1, "numberComponentsTotal": 2,
            "numberTestsCompleted": 3, "numberTestsTotal": 4
        }})

        assert job.progress() == "InProgress: componentes 1/2 (erros 0), testes 3/4 (erros 0)"
