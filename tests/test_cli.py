import io
import json
import os
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest.mock import Mock, patch

from solders.keypair import Keypair

from idlcli.cli import _parse_keymap, main
from idlcli.commands import build_parser, instruction_help
from idlcli.schema import load

PROGRAM_ID = "1,2,3,4,5,6,7,8"

IDL_DOCUMENT = {
    "name": "bank",
    "version": "0.1.0",
    "instructions": [
        {
            "name": "transfer",
            "args": [{"name": "amount", "type": "u64"}],
            "accounts": [
                {"name": "sender", "signer": True, "writable": True},
                {"name": "recipient", "writable": True},
            ],
        },
        {
            "name": "open_vault",
            "args": [{"name": "label", "type": "[u8; 8]"}],
            "accounts": [
                {"name": "vault", "writable": True, "init": True, "pda": {"seeds": [{"kind": "arg", "path": "label"}]}},
            ],
        },
    ],
}

_ENV_KEYS = ("IDLCLI_CONFIG", "NSSA_SEQUENCER_URL", "NSSA_WALLET_HOME_DIR", "IDLCLI_TIMEOUT", "IDLCLI_PROGRAM_ID_TOOL")


class CliTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmpdir = Path(self._tmp.name)
        self.idl_path = self.tmpdir / "bank-idl.json"
        self.idl_path.write_text(json.dumps(IDL_DOCUMENT))

        self.keypair = Keypair()
        self.keypair_path = self.tmpdir / "sender.json"
        self.keypair_path.write_text(json.dumps(list(bytes(self.keypair))))

        env = {k: v for k, v in os.environ.items() if k not in _ENV_KEYS}
        self._env = patch.dict(os.environ, env, clear=True)
        self._env.start()
        self._cwd = patch("idlcli.config.Path.cwd", return_value=self.tmpdir)
        self._cwd.start()

    def tearDown(self) -> None:
        self._cwd.stop()
        self._env.stop()
        self._tmp.cleanup()

    def _run(self, argv):
        out = io.StringIO()
        with redirect_stdout(out):
            rc = main(argv)
        return rc, out.getvalue()

    def _transfer_argv(self, *extra: str):
        return [
            "--idl",
            str(self.idl_path),
            "--program-id",
            PROGRAM_ID,
            "--keypair",
            str(self.keypair_path),
            *extra,
            "transfer",
            "--amount",
            "5",
            "--sender-account",
            str(self.keypair.pubkey()),
            "--recipient-account",
            "22" * 32,
        ]

    def test_dry_run_prints_payload_without_network(self) -> None:
        with patch("idlcli.submit.urllib.request.urlopen") as urlopen:
            rc, output = self._run(self._transfer_argv("--dry-run"))
        self.assertEqual(rc, 0)
        urlopen.assert_not_called()
        self.assertIn("Instruction: transfer", output)
        self.assertIn("amount = 5", output)
        self.assertIn("[00000000, 00000005, 00000000]", output)
        self.assertIn("Dry run", output)

    def test_dry_run_missing_argument_fails_without_network(self) -> None:
        argv = ["--idl", str(self.idl_path), "--program-id", PROGRAM_ID, "--dry-run", "transfer"]
        with patch("idlcli.submit.urllib.request.urlopen") as urlopen:
            rc, output = self._run(argv)
        self.assertEqual(rc, 1)
        urlopen.assert_not_called()
        self.assertIn("--amount", output)

    def test_dry_run_missing_signer_key(self) -> None:
        argv = self._transfer_argv("--dry-run")
        argv.remove("--keypair")
        argv.remove(str(self.keypair_path))
        rc, output = self._run(argv)
        self.assertEqual(rc, 1)
        self.assertIn("No signing key", output)

    def test_overflow_reports_flag_and_token(self) -> None:
        argv = self._transfer_argv("--dry-run")
        argv[argv.index("5")] = str(2**64)
        rc, output = self._run(argv)
        self.assertEqual(rc, 1)
        self.assertIn("--amount", output)
        self.assertIn(str(2**64), output)

    def test_program_is_required(self) -> None:
        argv = ["--idl", str(self.idl_path), "--dry-run", "open-vault", "--label", "main"]
        rc, output = self._run(argv)
        self.assertEqual(rc, 1)
        self.assertIn("--program", output)

    def test_pda_only_instruction_dry_run(self) -> None:
        argv = ["--idl", str(self.idl_path), "--program-id", PROGRAM_ID, "-v", "--dry-run", "open-vault", "--label", "main"]
        rc, output = self._run(argv)
        self.assertEqual(rc, 0)
        self.assertIn("PDA vault ->", output)
        self.assertIn('label = "main"', output)

    def test_bin_auto_fills_program_id_argument(self) -> None:
        self.idl_path.write_text(
            json.dumps({"instructions": [{"name": "register", "args": [{"name": "token_program_id", "type": "program_id"}]}]})
        )
        binary = self.tmpdir / "token.bin"
        binary.write_bytes(b"\x7fELF")
        argv = ["--idl", str(self.idl_path), "--program-id", PROGRAM_ID, "--bin", f"token={binary}", "--dry-run", "register"]
        with patch("idlcli.cli.read_program_id", return_value=(9, 9, 9, 9, 9, 9, 9, 9)):
            rc, output = self._run(argv)
        self.assertEqual(rc, 0)
        self.assertIn("Auto-filled --token-program-id", output)
        self.assertIn("token_program_id = [9, 9, 9, 9, 9, 9, 9, 9]", output)

    def test_submit_and_skip_confirmation(self) -> None:
        with patch("idlcli.cli.SequencerClient") as client_cls:
            client = client_cls.return_value
            client.get_account_nonces.return_value = [7]
            client.send_transaction.return_value = "abc123"
            rc, output = self._run(self._transfer_argv("--sequencer-url", "http://seq:1", "--no-wait"))

        self.assertEqual(rc, 0)
        client_cls.assert_called_once_with("http://seq:1", 30.0)
        client.send_transaction.assert_called_once()
        client.wait_for_confirmation.assert_not_called()
        self.assertIn("tx_hash: abc123", output)

    def test_submit_unconfirmed_returns_error(self) -> None:
        with patch("idlcli.cli.SequencerClient") as client_cls:
            client = client_cls.return_value
            client.get_account_nonces.return_value = [0]
            client.send_transaction.return_value = "abc123"
            client.wait_for_confirmation.return_value = False
            rc, output = self._run(self._transfer_argv())
        self.assertEqual(rc, 1)
        self.assertIn("NOT confirmed", output)

    def test_idl_command_lists_instructions(self) -> None:
        rc, output = self._run(["--idl", str(self.idl_path), "idl"])
        self.assertEqual(rc, 0)
        self.assertIn("bank v0.1.0: 2 instruction(s)", output)
        self.assertIn("[1] open_vault", output)
        self.assertIn('pda(arg("label"))', output)

    def test_idl_command_without_idl(self) -> None:
        rc, output = self._run(["idl"])
        self.assertEqual(rc, 1)
        self.assertIn("No IDL loaded", output)

    def test_missing_idl_file(self) -> None:
        rc, output = self._run(["--idl", str(self.tmpdir / "missing.json"), "idl"])
        self.assertEqual(rc, 1)
        self.assertIn("IDL file not found", output)

    def test_instruction_colliding_with_builtin(self) -> None:
        self.idl_path.write_text(json.dumps({"instructions": [{"name": "inspect"}]}))
        rc, output = self._run(["--idl", str(self.idl_path), "idl"])
        self.assertEqual(rc, 1)
        self.assertIn("collides with built-in command", output)

    def test_argument_named_help_is_schema_error(self) -> None:
        doc = {"instructions": [{"name": "go", "args": [{"name": "help", "type": "u8"}]}]}
        self.idl_path.write_text(json.dumps(doc))
        rc, output = self._run(["--idl", str(self.idl_path), "--program-id", PROGRAM_ID, "go", "--help", "1"])
        self.assertEqual(rc, 1)
        self.assertIn("--help is used by both", output)

    def test_bad_wallet_home_does_not_mask_missing_argument(self) -> None:
        os.environ["NSSA_WALLET_HOME_DIR"] = str(self.tmpdir / "no-wallet")
        argv = ["--idl", str(self.idl_path), "--program-id", PROGRAM_ID, "--dry-run", "transfer"]
        rc, output = self._run(argv)
        self.assertEqual(rc, 1)
        self.assertIn("Missing required arguments: --amount", output)
        self.assertNotIn("Wallet directory", output)

    def test_inspect_prints_program_id(self) -> None:
        binary = self.tmpdir / "bank.bin"
        binary.write_bytes(b"\x7fELF")
        with patch("idlcli.cli.read_program_id", return_value=(1, 0, 0, 0, 0, 0, 0, 2)):
            rc, output = self._run(["inspect", str(binary)])
        self.assertEqual(rc, 0)
        self.assertIn("ProgramId (decimal): 1,0,0,0,0,0,0,2", output)
        self.assertIn("ImageID (hex bytes): 01000000", output)

    def test_inspect_continues_after_failure(self) -> None:
        binary = self.tmpdir / "bank.bin"
        binary.write_bytes(b"\x7fELF")
        with patch("idlcli.cli.read_program_id", side_effect=[FileNotFoundError("gone.bin"), (0,) * 8]):
            rc, output = self._run(["inspect", "gone.bin", str(binary)])
        self.assertEqual(rc, 1)
        self.assertIn("gone.bin", output)
        self.assertIn("ProgramId (decimal): 0,0,0,0,0,0,0,0", output)

    def test_init_scaffolds_project(self) -> None:
        dest = self.tmpdir / "my-program"
        rc, _ = self._run(["init", str(dest)])
        self.assertEqual(rc, 0)
        idl_path = dest / "my-program-idl.json"
        self.assertTrue(idl_path.exists())
        self.assertTrue((dest / "idlcli.toml").exists())
        self.assertTrue((dest / ".gitignore").exists())

        rc, output = self._run(["--idl", str(idl_path), "idl"])
        self.assertEqual(rc, 0)
        self.assertIn("my_program v0.1.0", output)

    def test_init_refuses_non_empty_destination(self) -> None:
        dest = self.tmpdir / "taken"
        dest.mkdir()
        (dest / "README").write_text("hi")
        rc, output = self._run(["init", str(dest)])
        self.assertEqual(rc, 1)
        self.assertIn("Destination not empty", output)

    def test_keyboard_interrupt(self) -> None:
        with patch.dict("idlcli.cli._HANDLERS", {"idl": Mock(side_effect=KeyboardInterrupt)}):
            rc, output = self._run(["--idl", str(self.idl_path), "idl"])
        self.assertEqual(rc, 130)
        self.assertIn("Interrupted", output)


class InstructionHelpTests(unittest.TestCase):
    def test_lists_required_and_derived_accounts(self) -> None:
        idl = load(IDL_DOCUMENT)
        text = instruction_help(idl.instruction("open_vault"))
        self.assertIn('vault [mut, init] derived (PDA: arg("label"))', text)
        text = instruction_help(idl.instruction("transfer"))
        self.assertIn("sender [mut, signer] required: --sender-account", text)

    def test_parser_exposes_typed_flags(self) -> None:
        parser = build_parser(load(IDL_DOCUMENT), "bank")
        args = parser.parse_args(["open-vault", "--label", "abc"])
        self.assertEqual(args.instruction, "open_vault")
        self.assertEqual(args.arg__label, "abc")


class ParseKeymapTests(unittest.TestCase):
    def test_parses_pairs(self) -> None:
        self.assertEqual(_parse_keymap(["token=/tmp/token.bin"]), {"token": "/tmp/token.bin"})

    def test_rejects_missing_separator(self) -> None:
        with self.assertRaisesRegex(ValueError, "NAME=PATH"):
            _parse_keymap(["token"])


if __name__ == "__main__":
    unittest.main()
