def _continue() -> None:
    """Asks the user to continue."""
    answer = input("Continue Y/N? ")
    if answer.lower().strip() == "n":
        print("Aborting deployment!")
        exit(-1)


def _confirm_network(network_name: str, chain_id: int) -> None:
    """Asks the user to confirm the target network before the first transaction."""
    answer = input(f"Deploy to {network_name} (chain ID {chain_id}) Y/N? ")
    if answer.lower().strip() == "n":
        print("Aborting deployment!")
        exit(-1)


def _confirm_resume(entries: dict) -> None:
    """Asks the user to confirm resuming from a checkpointed deployment."""
    print("\n(i) Resuming an ongoing deployment with the following contracts:")
    for name, address in entries.items():
        print(f"\t{name}={address}")
    _continue()
