# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import os
import pytest
from mysqlsandbox.setup.config import Config


def test_commit_fills_derived_values(tmp_path) -> None:
    cfg = Config()
    cfg.work_dir = str(tmp_path)
    cfg.commit()

    assert len(cfg.run_id) == 8
    assert cfg.cid_dir == os.path.join(str(tmp_path), "cid", cfg.run_id)
    assert os.path.isdir(cfg.cid_dir)
    assert cfg.run_id in str(cfg)


def test_commit_creates_temporary_work_dir() -> None:
    cfg = Config()
    cfg.work_dir = None
    cfg.commit()
    work_dir = cfg.work_dir
    assert cfg.work_dir_is_tmp
    assert os.path.isdir(work_dir)

    del cfg
    assert not os.path.exists(work_dir)


def test_commit_rejects_unknown_client(tmp_path) -> None:
    cfg = Config()
    cfg.work_dir = str(tmp_path)
    cfg.client_mode = "telnet"
    with pytest.raises(ValueError):
        cfg.commit()


def test_load_file(tmp_path) -> None:
    path = tmp_path / "cfg.yaml"
    path.write_text("image: quay.io/sclorg/mysql-84-c9s\nready_attempts: 20\n"
                    "rendered_config_paths: [/etc/my.cnf]\n")
    cfg = Config()
    cfg.load_file(str(path))

    assert cfg.image == "quay.io/sclorg/mysql-84-c9s"
    assert cfg.ready_attempts == 20
    assert cfg.rendered_config_paths == ["/etc/my.cnf"]
    # instances do not leak into the class defaults
    assert Config().rendered_config_paths == ["/etc/my.cnf", "/etc/my.cnf.d/*"]


@pytest.mark.parametrize("content", [
    "no_such_option: 1\n",
    "run_id: abc\n",
    "commit: 1\n",
    "_private: 1\n",
    "- a list\n",
])
def test_load_file_rejects(tmp_path, content) -> None:
    path = tmp_path / "cfg.yaml"
    path.write_text(content)
    with pytest.raises(ValueError):
        Config().load_file(str(path))
