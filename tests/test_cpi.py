"""Unit tests for the arbitrary CPI rule."""

from pathlib import Path

from solguard.context import FileContext
from solguard.parser import create_parser, parse_bytes
from solguard.rules.cpi import ArbitraryCpi

TRANSFER = b"""pub fn transfer(accounts: &[AccountInfo], amount: u64) -> ProgramResult {
    let iter = &mut accounts.iter();
    let source = next_account_info(iter)?;
    let destination = next_account_info(iter)?;
    let authority = next_account_info(iter)?;
    let token_program = next_account_info(iter)?;
    %CHECK%
    let ix = spl_token::instruction::transfer(
        token_program.key,
        source.key,
        destination.key,
        authority.key,
        &[],
        amount,
    )?;
    invoke(&ix, &[source.clone(), destination.clone(), authority.clone(), token_program.clone()])?;
    Ok(())
}
"""


def _run_rule(source: bytes, path: Path | None = None) -> list:
    """Parse source, build context, run ArbitraryCpi, return findings."""
    if path is None:
        path = Path("program.rs")
    tree = parse_bytes(source, parser=create_parser())
    ctx = FileContext(path=path, source=source, tree=tree)
    return ArbitraryCpi().analyze(ctx)


def test_unvalidated_token_program_flagged():
    findings = _run_rule(TRANSFER.replace(b"%CHECK%", b""))
    assert len(findings) == 1
    f = findings[0]
    assert f.rule_id == "arbitrary-cpi"
    assert f.location.line == 16
    assert "'token_program'" in f.description


def test_validated_token_program_not_flagged():
    check = (
        b"if token_program.key != &spl_token::id() {\n"
        b"        return Err(ProgramError::IncorrectProgramId);\n"
        b"    }"
    )
    assert _run_rule(TRANSFER.replace(b"%CHECK%", check)) == []


def test_check_program_account_helper_counts_as_validation():
    check = b"spl_token::check_program_account(token_program.key)?;"
    assert _run_rule(TRANSFER.replace(b"%CHECK%", check)) == []


def test_instruction_program_id_from_account():
    source = b"""pub fn call(accounts: &[AccountInfo]) -> ProgramResult {
    let iter = &mut accounts.iter();
    let target = next_account_info(iter)?;
    let ix = Instruction { program_id: *target.key, accounts: vec![], data: vec![] };
    invoke(&ix, &[target.clone()])
}
"""
    findings = _run_rule(source)
    assert len(findings) == 1
    assert "'target'" in findings[0].description
    assert findings[0].location.line == 5


def test_constant_program_id_not_flagged():
    source = b"""pub fn call(accounts: &[AccountInfo]) -> ProgramResult {
    let iter = &mut accounts.iter();
    let payer = next_account_info(iter)?;
    let ix = Instruction { program_id: spl_memo::ID, accounts: vec![], data: vec![] };
    invoke(&ix, &[payer.clone()])
}
"""
    assert _run_rule(source) == []


def test_no_cpi_no_finding():
    source = b"fn f(token_program: &AccountInfo) { let _k = token_program.key; }\n"
    assert _run_rule(source) == []


def test_key_check_after_invoke_still_flagged():
    source = b"""pub fn call(accounts: &[AccountInfo], ix: Instruction) -> ProgramResult {
    let iter = &mut accounts.iter();
    let token_program = next_account_info(iter)?;
    invoke(&ix, &[token_program.clone()])?;
    if token_program.key != &spl_token::id() {
        return Err(ProgramError::IncorrectProgramId);
    }
    Ok(())
}
"""
    findings = _run_rule(source)
    assert len(findings) == 1
    assert findings[0].location.line == 4


def test_each_invoke_judged_by_checks_before_it():
    source = b"""pub fn call(accounts: &[AccountInfo], ix: Instruction) -> ProgramResult {
    let iter = &mut accounts.iter();
    let token_program = next_account_info(iter)?;
    invoke(&ix, &[token_program.clone()])?;
    if token_program.key != &spl_token::id() {
        return Err(ProgramError::IncorrectProgramId);
    }
    invoke(&ix, &[token_program.clone()])?;
    Ok(())
}
"""
    findings = _run_rule(source)
    assert [f.location.line for f in findings] == [4]
