import hashlib
import tempfile
import unittest
from pathlib import Path
from unittest.mock import Mock

from solders.keypair import Keypair

from idlcli.errors import InvalidFormat, MissingRequired, MissingSigner, UnresolvedAccount
from idlcli.pda import derive_account_id
from idlcli.schema import load
from idlcli.tx import Invocation, assemble, parse_arguments, sign
from idlcli.wallet import Wallet

PROGRAM_ID = (9, 8, 7, 6, 5, 4, 3, 2)

IDL = load(
    {
        "name": "vault",
        "instructions": [
            {"name": "noop"},
            {
                "name": "deposit",
                "args": [
                    {"name": "amount", "type": "u64"},
                    {"name": "memo", "type": {"option": {"array": ["u8", 4]}}},
                ],
                "accounts": [
                    {"name": "user", "signer": True},
                    {
                        "name": "state",
                        "writable": True,
                        "pda": {
                            "seeds": [
                                {"kind": "const", "value": "vault"},
                                {"kind": "account", "path": "user"},
                            ]
                        },
                    },
                    {"name": "extra", "rest": True},
                ],
            },
            {
                "name": "nested",
                "accounts": [
                    {"name": "parent", "pda": {"seeds": [{"kind": "const", "value": "root"}]}},
                    {"name": "child", "pda": {"seeds": [{"kind": "account", "path": "parent"}]}},
                ],
            },
            {
                "name": "chained",
                "accounts": [
                    {"name": "child", "pda": {"seeds": [{"kind": "account", "path": "parent"}]}},
                    {"name": "parent", "pda": {"seeds": [{"kind": "const", "value": "root"}]}},
                ],
            },
        ],
    }
)


def _invocation(name: str, args=None, accounts=None) -> Invocation:
    return Invocation(IDL.instruction(name), dict(args or {}), dict(accounts or {}))


class AssembleTests(unittest.TestCase):
    def setUp(self) -> None:
        self.keypair = Keypair()
        self.user = bytes(self.keypair.pubkey())
        self.wallet = Wallet([self.keypair])

    def _deposit(self, **overrides):
        args = {"amount": "5", "memo": None}
        accounts = {"user": self.user.hex(), "extra": ",".join(["aa" * 32, "bb" * 32])}
        args.update(overrides)
        return _invocation("deposit", args, accounts)

    def test_builds_payload_with_derived_state(self) -> None:
        payload = assemble(IDL, self._deposit(), PROGRAM_ID, wallet=self.wallet)

        expected_state = derive_account_id(PROGRAM_ID, hashlib.sha256(b"vault" + self.user).digest())
        names = [ref.name for ref in payload.accounts]
        self.assertEqual(names, ["user", "state", "extra", "extra"])
        self.assertEqual(payload.accounts[1].account_id, expected_state)
        self.assertTrue(payload.accounts[1].writable)
        self.assertEqual(payload.accounts[3].account_id, b"\xbb" * 32)
        self.assertEqual(payload.instruction_index, 1)
        # index, amount as two words, absent option tag
        self.assertEqual(payload.instruction_data, (1, 5, 0, 0))
        self.assertEqual(payload.signer_ids, [self.user])

    def test_option_value_is_encoded_with_tag(self) -> None:
        payload = assemble(IDL, self._deposit(memo="ab"), PROGRAM_ID, wallet=self.wallet)
        self.assertEqual(payload.instruction_data, (1, 5, 0, 1, 97, 98, 0, 0))

    def test_missing_signer_key(self) -> None:
        with self.assertRaisesRegex(MissingSigner, "user"):
            assemble(IDL, self._deposit(), PROGRAM_ID, wallet=Wallet())

    def test_missing_argument_lists_flags(self) -> None:
        with self.assertRaisesRegex(MissingRequired, "--amount"):
            assemble(IDL, self._deposit(amount=None), PROGRAM_ID, wallet=self.wallet)

    def test_missing_account_override(self) -> None:
        invocation = _invocation("deposit", {"amount": "1"}, {"extra": "aa" * 32})
        with self.assertRaisesRegex(MissingRequired, "--user-account"):
            assemble(IDL, invocation, PROGRAM_ID, wallet=self.wallet)

    def test_bad_argument_reports_flag(self) -> None:
        with self.assertRaises(InvalidFormat) as ctx:
            assemble(IDL, self._deposit(amount="abc"), PROGRAM_ID, wallet=self.wallet)
        self.assertEqual(ctx.exception.flag, "amount")
        self.assertIn("--amount", str(ctx.exception))

    def test_pda_seeded_by_earlier_pda(self) -> None:
        payload = assemble(IDL, _invocation("nested"), PROGRAM_ID)
        parent = derive_account_id(PROGRAM_ID, b"root".ljust(32, b"\x00"))
        self.assertEqual(payload.accounts[0].account_id, parent)
        self.assertEqual(payload.accounts[1].account_id, derive_account_id(PROGRAM_ID, parent))

    def test_pda_referencing_later_pda_is_unresolved(self) -> None:
        with self.assertRaisesRegex(UnresolvedAccount, "parent"):
            assemble(IDL, _invocation("chained"), PROGRAM_ID)

    def test_account_override_from_program_binary(self) -> None:
        reader = Mock(return_value=(1, 0, 0, 0, 0, 0, 0, 0))
        with tempfile.TemporaryDirectory() as tmpdir:
            binary = Path(tmpdir) / "token.bin"
            binary.write_bytes(b"\x7fELF")
            invocation = self._deposit()
            invocation.account_tokens["extra"] = str(binary)
            payload = assemble(IDL, invocation, PROGRAM_ID, wallet=self.wallet, read_program_id=reader)
        reader.assert_called_once_with(str(binary))
        self.assertEqual(payload.accounts[-1].account_id, b"\x01" + b"\x00" * 31)

    def test_on_derived_callback(self) -> None:
        seen = []
        assemble(IDL, self._deposit(), PROGRAM_ID, wallet=self.wallet, on_derived=lambda n, a: seen.append(n))
        self.assertEqual(seen, ["state"])

    def test_sign_produces_one_witness_per_signer(self) -> None:
        payload = assemble(IDL, self._deposit(), PROGRAM_ID, wallet=self.wallet)
        signed = sign(payload, self.wallet)
        self.assertEqual(len(signed.witnesses), 1)
        pub, sig = signed.witnesses[0]
        self.assertEqual(pub, self.user)
        self.assertEqual(len(sig), 64)
        body = signed.to_json()
        self.assertEqual(body["program_id"], list(PROGRAM_ID))
        self.assertEqual(len(body["account_ids"]), 4)


class ParseArgumentsTests(unittest.TestCase):
    def test_omitted_option_is_absent(self) -> None:
        parsed = parse_arguments(IDL.instruction("deposit"), {"amount": "3"})
        self.assertFalse(parsed["memo"].present)
        self.assertEqual(parsed["amount"].data, 3)


if __name__ == "__main__":
    unittest.main()
