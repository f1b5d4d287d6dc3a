"""
swap.py - Simulated exact-output swap venue

A SwapVenue between the underlying asset and one collateral asset, quoting
from a reference price plus a fixed slippage. The venue holds its own
inventory in the TokenLedger, so every swap is a pair of real transfers:

    payer --amount_in of token_in--> venue
    venue --exact_amount_out of token_out--> payer

Quotes (rounded against the payer):
    buying collateral:  amount_in = out * price * (1 + slippage)
    selling collateral: amount_in = out / price * (1 + slippage)
"""

from __future__ import annotations

from .core import WAD, PriceOracle, SlippageExceeded
from .fixed_point import checked_add, mul_div_up, wmul_up, wdiv_up
from .pricing_source import fetch_price
from .tokens import TokenLedger


class SimulatedSwapVenue:
    """
    Exact-output venue for one collateral/underlying pair.

    Example:
        venue = SimulatedSwapVenue(tokens, oracle, "WETH", "USDC",
                                   slippage=to_wad("0.005"))
        tokens.mint(venue.wallet, "WETH", to_wad(1000))
        spent = venue.swap("engine", "USDC", "WETH", max_in, to_wad(1))
    """

    def __init__(
        self,
        tokens: TokenLedger,
        oracle: PriceOracle,
        collateral: str,
        underlying: str,
        slippage: int = 0,
        wallet: str = "swap_venue",
    ):
        """
        Args:
            tokens: Ledger holding the venue's inventory
            oracle: Reference price, underlying per collateral (WAD)
            collateral: Collateral token symbol
            underlying: Underlying token symbol
            slippage: Extra cost charged on every swap (WAD fraction)
            wallet: Holder id of the venue's inventory
        """
        if slippage < 0:
            raise ValueError(f"slippage cannot be negative, got {slippage}")
        self.tokens = tokens
        self.oracle = oracle
        self.collateral = collateral
        self.underlying = underlying
        self.slippage = slippage
        self.wallet = wallet
        self.swap_count = 0

    def quote(self, token_in: str, token_out: str, exact_amount_out: int) -> int:
        """Amount of token_in needed to receive exact_amount_out of token_out."""
        price = fetch_price(self.oracle)
        if (token_in, token_out) == (self.underlying, self.collateral):
            base = wmul_up(exact_amount_out, price)
        elif (token_in, token_out) == (self.collateral, self.underlying):
            base = wdiv_up(exact_amount_out, price)
        else:
            raise ValueError(f"Unsupported pair {token_in}->{token_out}")
        return mul_div_up(base, checked_add(WAD, self.slippage), WAD)

    def swap(
        self,
        payer: str,
        token_in: str,
        token_out: str,
        max_amount_in: int,
        exact_amount_out: int,
    ) -> int:
        """
        Deliver exactly exact_amount_out of token_out to payer.

        Returns:
            Amount of token_in taken from payer

        Raises:
            SlippageExceeded: If the quote exceeds max_amount_in
        """
        if exact_amount_out <= 0:
            raise ValueError(f"exact_amount_out must be positive, got {exact_amount_out}")
        amount_in = self.quote(token_in, token_out, exact_amount_out)
        if amount_in > max_amount_in:
            raise SlippageExceeded(
                f"Swap {token_in}->{token_out} needs {amount_in}, maximum is {max_amount_in}"
            )
        self.tokens.transfer(token_in, payer, self.wallet, amount_in)
        self.tokens.transfer(token_out, self.wallet, payer, exact_amount_out)
        self.swap_count += 1
        return amount_in

    def __repr__(self):
        return (f"SimulatedSwapVenue({self.collateral}/{self.underlying}, "
                f"slippage={self.slippage}, wallet={self.wallet})")
