from mprpc.controller import RpcController


def test_new_controller_has_not_failed():
    controller = RpcController()
    assert controller.failed is False
    assert controller.error_text == ""


def test_set_failed_records_reason():
    controller = RpcController()
    controller.set_failed("serialize request error!")
    assert controller.failed is True
    assert controller.error_text == "serialize request error!"


def test_set_failed_replaces_previous_reason():
    controller = RpcController()
    controller.set_failed("first")
    controller.set_failed("second")
    assert controller.error_text == "second"


def test_reset_clears_failure():
    controller = RpcController()
    controller.set_failed("connect error! error:111")
    controller.reset()
    assert controller.failed is False
    assert controller.error_text == ""