from pydantic import BaseModel

from completion_gateway.llm_adapter.fingerprint import KEY_PREFIX, fingerprint
from completion_gateway.llm_adapter.models import (
    ImageAttachment,
    Message,
    ResponseModel,
    ToolSpec,
)


class Other(BaseModel):
    b: str


def test_request_id_and_retries_do_not_change_fingerprint(make_request, extraction_model):
    a = make_request(request_id="req-1", retries=0, response_model=extraction_model)
    b = make_request(request_id="req-2", retries=5, response_model=extraction_model)

    assert fingerprint(a, "m") == fingerprint(b, "m")
    assert fingerprint(a, "m").startswith(KEY_PREFIX)


def test_fingerprint_ignores_dict_key_order(make_request):
    a = make_request(tools=[ToolSpec(name="t", parameters={"properties": {"x": {}, "y": {}}})])
    b = make_request(tools=[ToolSpec(name="t", parameters={"properties": {"y": {}, "x": {}}})])

    assert fingerprint(a, "m") == fingerprint(b, "m")


def test_model_changes_fingerprint(make_request):
    req = make_request()
    assert fingerprint(req, "model-a") != fingerprint(req, "model-b")
    assert fingerprint(req.model_copy(update={"model": "model-b"}), "model-a") == fingerprint(
        req, "model-b"
    )


def test_message_changes_fingerprint(make_request):
    assert fingerprint(make_request("one"), "m") != fingerprint(make_request("two"), "m")

    base = make_request()
    reordered = base.model_copy(update={"messages": list(reversed(base.messages))})
    assert fingerprint(base, "m") != fingerprint(reordered, "m")

    with_role = base.model_copy(
        update={"messages": base.messages + [Message(role="assistant", content="ok")]}
    )
    assert fingerprint(base, "m") != fingerprint(with_role, "m")


def test_schema_changes_fingerprint(make_request, extraction_model):
    a = make_request(response_model=extraction_model)
    b = make_request(response_model=ResponseModel(name="extraction", schema=Other))
    c = make_request(response_model=ResponseModel(name="renamed", schema=extraction_model.schema))
    d = make_request()

    keys = {fingerprint(r, "m") for r in (a, b, c, d)}
    assert len(keys) == 4


def test_dict_schema_equivalent_to_its_model(make_request, extraction_model):
    as_model = make_request(response_model=extraction_model)
    as_dict = make_request(
        response_model=ResponseModel(
            name="extraction", schema=extraction_model.schema.model_json_schema()
        )
    )
    assert fingerprint(as_model, "m") == fingerprint(as_dict, "m")


def test_sampling_params_and_tool_choice_change_fingerprint(make_request):
    base = make_request()
    variants = [
        make_request(temperature=0.1),
        make_request(top_p=0.5),
        make_request(frequency_penalty=0.2),
        make_request(presence_penalty=0.2),
        make_request(max_tokens=100),
        make_request(tools=[ToolSpec(name="click")]),
        make_request(tools=[ToolSpec(name="click")], tool_choice="required"),
    ]
    keys = {fingerprint(r, "m") for r in [base, *variants]}
    assert len(keys) == len(variants) + 1


def test_image_bytes_change_fingerprint(make_request):
    png_a = make_request(image=ImageAttachment(buffer=b"\x89PNG\x00\x01"))
    png_b = make_request(image=ImageAttachment(buffer=b"\x89PNG\x00\x02"))
    described = make_request(image=ImageAttachment(buffer=b"\x89PNG\x00\x01", description="x"))

    assert fingerprint(png_a, "m") != fingerprint(png_b, "m")
    assert fingerprint(png_a, "m") != fingerprint(described, "m")
    assert fingerprint(png_a, "m") != fingerprint(make_request(), "m")
    assert fingerprint(png_a, "m") == fingerprint(
        make_request(image=ImageAttachment(buffer=b"\x89PNG\x00\x01")), "m"
    )
